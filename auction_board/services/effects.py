"""Side effects requested by the board state machine and performed by the runtime."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Union

SLOT_DWELL = "dwell"
SLOT_STAGE = "stage"
TIMER_SLOTS = (SLOT_DWELL, SLOT_STAGE)


@dataclass(frozen=True)
class StartTimer:
    """Arm ``slot``, replacing whatever timer the slot held before."""

    slot: str
    delay: float
    token: int


@dataclass(frozen=True)
class CancelTimer:
    slot: str


@dataclass(frozen=True)
class UpdateIncentiveFlags:
    incentive_id: str
    updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, Tuple[str, ...]]:
        return self.incentive_id, tuple(sorted(self.updates))


Effect = Union[StartTimer, CancelTimer, UpdateIncentiveFlags]
