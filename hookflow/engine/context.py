# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Data Context

Run-scoped mapping of source key ("trigger" or node id) to that source's
output. Owned by a single run and never shared between executions.
"""

import copy
from typing import Any, Dict, Iterable, Iterator, Mapping

from .graph import TRIGGER_KEY


class DataContext(Mapping[str, Any]):
    """
    Grows monotonically during a run.

    Tracks:
    - Trigger payload under "trigger"
    - Each executed node's output under its node id
    """

    def __init__(self, trigger_payload: Any = None):
        self._values: Dict[str, Any] = {}
        if trigger_payload is not None:
            self.set(TRIGGER_KEY, trigger_payload)

    def set(self, key: str, value: Any) -> None:
        """Record a source's output. Keys are write-once."""
        if key in self._values:
            raise KeyError(f"Context already holds output for {key!r}")
        self._values[key] = value

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def as_dict(self) -> Dict[str, Any]:
        """Deep copy snapshot, safe to hand to handlers and evaluators"""
        return copy.deepcopy(self._values)

    @classmethod
    def rebuild(cls, entries: Iterable[tuple]) -> "DataContext":
        """Rebuild from (key, output) pairs, e.g. persisted step logs on resume."""
        context = cls()
        for key, value in entries:
            if key not in context:
                context.set(key, value)
        return context
