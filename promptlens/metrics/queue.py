"""Batched, retrying delivery of metric records to the collector."""

import asyncio
import logging
from typing import List, Optional

import httpx

from .. import __version__
from ..core.exceptions import DeliveryFailureError
from ..utils.telemetry import OperationType, TraceContext, get_tracer
from .records import MetricRecord

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_FLUSH_INTERVAL_MS = 5000


class MetricsQueue:
    """
    Buffers metric records and delivers them in batches.

    Records are posted as a JSON array to ``<base_url>/metrics``. A batch is
    sent when ``batch_size`` records are pending, every ``flush_interval_ms``
    from a background task, or on an explicit ``flush()``.

    Delivery is at-least-once: a batch that fails is put back at the front of
    the queue, ahead of anything enqueued while it was in flight, and the
    failure is raised to whoever awaited the flush. The background task logs
    and swallows failures. A batch that the collector stored but whose
    acknowledgement was lost will be sent again.

    The snapshot-and-clear step and the requeue step share one lock; the
    HTTP request itself runs outside it so enqueues are never blocked on the
    network.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        enabled: bool = True,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval_ms: int = DEFAULT_FLUSH_INTERVAL_MS,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if flush_interval_ms <= 0:
            raise ValueError("flush_interval_ms must be positive")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.batch_size = batch_size
        self.flush_interval_ms = flush_interval_ms
        self._enabled = enabled
        self._queue: List[MetricRecord] = []
        self._lock = asyncio.Lock()
        self._flush_task: Optional[asyncio.Task] = None
        self._auto_flush = False
        self._owns_client = http_client is None
        self._http_client = http_client
        self._timeout = timeout
        self._tracer = get_tracer()

        if self._enabled:
            self._start_auto_flush()

    @classmethod
    def from_config(cls, config, http_client: Optional[httpx.AsyncClient] = None) -> "MetricsQueue":
        """Build a queue from a ``PromptLensConfig``."""
        config.validate()
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            enabled=config.track_metrics,
            batch_size=config.metrics_batch_size,
            flush_interval_ms=config.metrics_flush_interval_ms,
            http_client=http_client,
            timeout=config.timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> List[MetricRecord]:
        """Copy of the records awaiting delivery, oldest first."""
        return list(self._queue)

    @property
    def auto_flush_running(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    def __len__(self) -> int:
        return len(self._queue)

    async def enqueue(self, record: MetricRecord) -> None:
        """
        Queue a record, flushing when the batch size is reached.

        Raises:
            DeliveryFailureError: if the threshold flush fails. The records
                stay queued.
        """
        if not self._enabled:
            return

        if self._auto_flush and not self.auto_flush_running:
            self._spawn_auto_flush()

        self._queue.append(record)

        if len(self._queue) >= self.batch_size:
            await self.flush()

    async def flush(self) -> None:
        """
        Deliver every pending record in one batch.

        Raises:
            DeliveryFailureError: on a non-2xx answer or a failed request,
                after the batch has been put back at the front of the queue.
                Any other error also puts the batch back before propagating.
        """
        if not self._enabled:
            return

        async with self._lock:
            if not self._queue:
                return
            batch = self._queue
            self._queue = []

        context = TraceContext(
            operation_type=OperationType.METRICS_FLUSH,
            attributes={"metrics.batch_size": len(batch)},
        )
        with self._tracer.trace_operation(context):
            try:
                await self._deliver(batch)
            except BaseException:
                await self._requeue(batch)
                raise

        self._tracer.record_flushed(len(batch))
        logger.debug(f"Delivered {len(batch)} metric records")

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable collection; buffered records are kept."""
        was_enabled = self._enabled
        self._enabled = enabled

        if enabled and not was_enabled:
            self._start_auto_flush()
        elif not enabled and was_enabled:
            self.stop_auto_flush()

    def stop_auto_flush(self) -> None:
        """Stop the background flush task."""
        self._auto_flush = False
        if self._flush_task is not None:
            self._flush_task.cancel()
            self._flush_task = None

    async def close(self) -> None:
        """Stop the background task, attempt a last flush and release the client."""
        task = self._flush_task
        self.stop_auto_flush()
        if task is not None:
            # An interrupted in-flight batch is requeued before the last flush
            await asyncio.gather(task, return_exceptions=True)
        try:
            await self.flush()
        finally:
            if self._owns_client and self._http_client is not None:
                await self._http_client.aclose()
                self._http_client = None

    async def __aenter__(self) -> "MetricsQueue":
        if self._enabled:
            self._start_auto_flush()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _start_auto_flush(self) -> None:
        self._auto_flush = True
        if not self.auto_flush_running:
            self._spawn_auto_flush()

    def _spawn_auto_flush(self) -> None:
        """Create the periodic flush task if an event loop is running."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Spawned by the first enqueue inside a loop
            return
        self._flush_task = loop.create_task(self._auto_flush_loop())

    async def _auto_flush_loop(self) -> None:
        interval = self.flush_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            try:
                await self.flush()
            except DeliveryFailureError as e:
                logger.debug(f"Auto-flush failed, {e.requeued} records requeued: {e}")
            except Exception as e:
                logger.warning(f"Unexpected error during metrics auto-flush: {e}")

    async def _requeue(self, batch: List[MetricRecord]) -> None:
        async with self._lock:
            self._queue = batch + self._queue

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._http_client

    async def _deliver(self, batch: List[MetricRecord]) -> None:
        client = await self._get_http_client()
        try:
            response = await client.post(
                f"{self.base_url}/metrics",
                json=[record.to_dict() for record in batch],
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "X-SDK-Version": f"python-{__version__}",
                },
            )
        except (httpx.HTTPError, RuntimeError, TypeError, ValueError) as e:
            # Closed clients raise RuntimeError; unencodable fields raise TypeError or ValueError
            raise DeliveryFailureError(
                f"Failed to send metrics: {e}",
                requeued=len(batch),
            ) from e

        if not response.is_success:
            raise DeliveryFailureError(
                f"Failed to send metrics: {response.status_code}",
                requeued=len(batch),
                status_code=response.status_code,
            )
