"""Rotation state for round-robin experiments."""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

NOT_STARTED = -1


@dataclass
class RotationState:
    """Last-selected indices of one experiment."""
    index: int = NOT_STARTED
    user_indices: Dict[str, int] = field(default_factory=dict)


class ExperimentRegistry:
    """
    Mapping from experiment id to its rotation state.

    A registry lives as long as its owner; there is no removal. Indices are
    only advanced through ``VariantSelector``, which calls ``advance`` under
    the registry lock so no two selections observe the same pre-increment
    index.
    """

    def __init__(self):
        self._states: Dict[str, RotationState] = {}
        self._lock = threading.Lock()

    def advance(self, experiment_id: str, size: int, user_id: Optional[str] = None) -> int:
        """Move the rotation for ``experiment_id`` (or one of its users) forward."""
        with self._lock:
            state = self._states.get(experiment_id)
            if state is None:
                state = self._states[experiment_id] = RotationState()

            if user_id is None:
                state.index = (state.index + 1) % size
                return state.index

            index = (state.user_indices.get(user_id, NOT_STARTED) + 1) % size
            state.user_indices[user_id] = index
            return index

    def current_index(self, experiment_id: str) -> int:
        """Last globally selected index, or -1 if never selected."""
        state = self._states.get(experiment_id)
        return state.index if state else NOT_STARTED

    def user_index(self, experiment_id: str, user_id: str) -> int:
        """Last index selected for ``user_id``, or -1."""
        state = self._states.get(experiment_id)
        if state is None:
            return NOT_STARTED
        return state.user_indices.get(user_id, NOT_STARTED)

    def experiment_ids(self) -> List[str]:
        return list(self._states)

    def __contains__(self, experiment_id: str) -> bool:
        return experiment_id in self._states

    def __len__(self) -> int:
        return len(self._states)


# Process-wide registry used when none is passed explicitly
_default_registry = ExperimentRegistry()


def get_default_registry() -> ExperimentRegistry:
    """Get the process-wide experiment registry."""
    return _default_registry
