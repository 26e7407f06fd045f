#!/usr/bin/env python3
"""Demonstration of prompt experiments with metrics collection."""

import asyncio
import json
import logging
import random

import httpx

from promptlens import (
    Experiment,
    InMemoryMetricsStore,
    MetricsQueue,
    experiment_decorator,
)

logging.basicConfig(level=logging.DEBUG)

# Stands in for the remote collector
store = InMemoryMetricsStore()


def collector(request: httpx.Request) -> httpx.Response:
    store.store_metrics(json.loads(request.content))
    return httpx.Response(200, json={"success": True})


class ExplanationService:
    """Simulated model-backed service."""

    def __init__(self, metrics_queue: MetricsQueue):
        self.metrics_queue = metrics_queue

    @experiment_decorator(Experiment(
        id="explanation-styles",
        prompt_variants=[
            "Explain the concept of recursion like I'm 5 years old",
            "Explain the concept of recursion with a technical definition",
            "Explain the concept of recursion using a story",
        ],
        distribution="round-robin",
    ))
    async def get_explanation(self, params):
        await asyncio.sleep(random.uniform(0.01, 0.05))
        return {"model": params["model"], "answer": f"(answer to: {params['messages'][-1]['content']})"}


async def main():
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(collector))
    async with MetricsQueue(
        api_key="demo-key",
        base_url="https://api.promptlens.dev",
        batch_size=5,
        http_client=http_client,
    ) as queue:
        service = ExplanationService(queue)

        for i in range(12):
            result = await service.get_explanation(
                {"model": "gpt-4o-mini", "messages": [{"role": "user", "content": "placeholder"}]},
                user_id=f"user-{i % 3}",
            )
            print(f"call {i}: variant {result.experiment.variant_index} "
                  f"({result.experiment.metrics.latency_ms:.1f} ms)")

        await ExplanationService.get_explanation.wait_for_metrics()

    print("\nAggregated metrics:")
    print(store.get_aggregated_metrics("explanation-styles"))


if __name__ == "__main__":
    asyncio.run(main())
