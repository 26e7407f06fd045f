"""Prompt variant selection strategies."""

import logging
import random
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from ..core.exceptions import InvalidInputError
from .registry import ExperimentRegistry, get_default_registry

logger = logging.getLogger(__name__)


class DistributionMode(Enum):
    """How variants are distributed across calls."""
    ROUND_ROBIN = "round-robin"
    RANDOM = "random"
    WEIGHTED = "weighted"

    @classmethod
    def parse(cls, value: Union["DistributionMode", str, None]) -> "DistributionMode":
        """Accept a mode, its string value, or None (round-robin)."""
        if value is None:
            return cls.ROUND_ROBIN
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidInputError(
                f"Unknown distribution mode: {value!r}",
                {"allowed": [m.value for m in cls]},
            ) from None


def _require_variants(variants: Sequence[str], purpose: str) -> None:
    if not variants:
        raise InvalidInputError(f"No prompt variants provided for {purpose}")


class VariantSelector:
    """
    Selects prompt variants for experiments.

    Round-robin rotation state is kept in an ``ExperimentRegistry``; pass a
    fresh registry for isolated rotations, otherwise the process-wide one is
    used. Random draws come from ``rng`` so tests can seed them.
    """

    def __init__(
        self,
        registry: Optional[ExperimentRegistry] = None,
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry if registry is not None else get_default_registry()
        self._rng = rng or random.Random()

    def select_round_robin(self, experiment_id: str, variants: Sequence[str]) -> str:
        """Next variant in the experiment's global rotation."""
        return variants[self._round_robin_index(experiment_id, variants)]

    def select_round_robin_for_user(
        self,
        experiment_id: str,
        user_id: str,
        variants: Sequence[str],
    ) -> str:
        """Next variant in the rotation of a single user."""
        return variants[self._round_robin_index(experiment_id, variants, user_id)]

    def select_random(self, variants: Sequence[str]) -> str:
        """Uniformly random variant."""
        return variants[self._random_index(variants)]

    def select_weighted(
        self,
        variants: Sequence[str],
        weights: Optional[Sequence[float]],
    ) -> str:
        """Variant drawn proportionally to ``weights``."""
        return variants[self._weighted_index(variants, weights)]

    def select(
        self,
        experiment_id: str,
        variants: Sequence[str],
        mode: Union[DistributionMode, str, None] = DistributionMode.ROUND_ROBIN,
        weights: Optional[Sequence[float]] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """Select a variant according to ``mode``."""
        _, variant = self.select_with_index(experiment_id, variants, mode, weights, user_id)
        return variant

    def select_with_index(
        self,
        experiment_id: str,
        variants: Sequence[str],
        mode: Union[DistributionMode, str, None] = DistributionMode.ROUND_ROBIN,
        weights: Optional[Sequence[float]] = None,
        user_id: Optional[str] = None,
    ) -> Tuple[int, str]:
        """Like ``select`` but also return the index that was picked."""
        mode = DistributionMode.parse(mode)

        if mode is DistributionMode.RANDOM:
            index = self._random_index(variants)
        elif mode is DistributionMode.WEIGHTED:
            if weights is None:
                raise InvalidInputError("Weights must be provided for weighted distribution")
            index = self._weighted_index(variants, weights)
        else:
            # An empty user id rotates globally
            index = self._round_robin_index(experiment_id, variants, user_id or None)

        logger.debug(f"Experiment {experiment_id}: selected variant {index} ({mode.value})")
        return index, variants[index]

    def current_index(self, experiment_id: str) -> int:
        """Last globally selected index for the experiment, or -1."""
        return self.registry.current_index(experiment_id)

    def _round_robin_index(
        self,
        experiment_id: str,
        variants: Sequence[str],
        user_id: Optional[str] = None,
    ) -> int:
        _require_variants(variants, "rotation")
        return self.registry.advance(experiment_id, len(variants), user_id)

    def _random_index(self, variants: Sequence[str]) -> int:
        _require_variants(variants, "random selection")
        return self._rng.randrange(len(variants))

    def _weighted_index(
        self,
        variants: Sequence[str],
        weights: Optional[Sequence[float]],
    ) -> int:
        _require_variants(variants, "weighted selection")
        if weights is None or len(weights) != len(variants):
            raise InvalidInputError(
                "Weights must match the number of prompt variants",
                {"variants": len(variants), "weights": None if weights is None else len(weights)},
            )

        total = sum(weights)
        draw = self._rng.random() * total

        cumulative = 0.0
        for index, weight in enumerate(weights):
            cumulative += weight
            if draw < cumulative:
                return index

        # Rounding left the draw unmatched
        return len(variants) - 1
