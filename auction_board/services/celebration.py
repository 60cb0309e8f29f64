from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional

from auction_board.services.effects import SLOT_STAGE, CancelTimer, Effect, StartTimer

STAGE_IDLE = "idle"
STAGE_PROGRESS = "progress"
STAGE_MESSAGE = "message"
STAGE_DETAIL = "detail"
STAGE_CLOSING = "closing"

OVERLAY_STAGES = (STAGE_MESSAGE, STAGE_DETAIL, STAGE_CLOSING)


@dataclass(frozen=True)
class CelebrationPayload:
    id: str
    name: str
    amount: float
    goal: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "goal": self.goal,
        }


@dataclass(frozen=True)
class CelebrationTimings:
    """
    Stage lengths in seconds.

    ``met_progress_seconds`` is the progress reveal. The remaining values are
    offsets inside the overlay run that follows it: the detail stage replaces
    the name/amount stage at ``message_seconds``, is hidden again at
    ``detail_hide_seconds`` and the overlay ends at ``run_seconds``.
    """

    met_progress_seconds: float = 5.0
    message_seconds: float = 4.5
    detail_hide_seconds: float = 9.5
    run_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "CelebrationTimings":
        defaults = cls()
        return cls(
            met_progress_seconds=float(
                settings.get("met_progress_seconds", defaults.met_progress_seconds)
            ),
            message_seconds=float(
                settings.get("celebration_message_seconds", defaults.message_seconds)
            ),
            detail_hide_seconds=float(
                settings.get(
                    "celebration_detail_hide_seconds", defaults.detail_hide_seconds
                )
            ),
            run_seconds=float(
                settings.get("celebration_run_seconds", defaults.run_seconds)
            ),
        )

    @property
    def total_seconds(self) -> float:
        return self.met_progress_seconds + self.run_seconds

    def stage_length(self, stage: str) -> float:
        if stage == STAGE_PROGRESS:
            return self.met_progress_seconds
        if stage == STAGE_MESSAGE:
            return self.message_seconds
        if stage == STAGE_DETAIL:
            return self.detail_hide_seconds - self.message_seconds
        if stage == STAGE_CLOSING:
            return self.run_seconds - self.detail_hide_seconds
        raise ValueError(f"Unknown celebration stage: {stage}")


_NEXT_STAGE = {
    STAGE_PROGRESS: STAGE_MESSAGE,
    STAGE_MESSAGE: STAGE_DETAIL,
    STAGE_DETAIL: STAGE_CLOSING,
}


@dataclass
class CelebrationState:
    pending: Deque[CelebrationPayload] = field(default_factory=deque)
    active: Optional[CelebrationPayload] = None
    stage: str = STAGE_IDLE
    token: int = 0


@dataclass(frozen=True)
class SequencerStep:
    effects: List[Effect]
    started: bool = False
    finished: bool = False


class CelebrationSequencer:
    """Plays queued celebrations one at a time through their fixed stages."""

    def __init__(
        self,
        state: CelebrationState,
        timings: Optional[CelebrationTimings] = None,
    ) -> None:
        self.state = state
        self.timings = timings or CelebrationTimings()

    def is_active(self) -> bool:
        return self.state.active is not None

    def enqueue(self, payload: CelebrationPayload) -> SequencerStep:
        self.state.pending.append(payload)
        if self.is_active():
            return SequencerStep(effects=[])
        return self._play_next()

    def advance(self, token: int) -> SequencerStep:
        """Handle the stage timer firing; stale tokens are ignored."""
        if not self.is_active() or token != self.state.token:
            return SequencerStep(effects=[])
        next_stage = _NEXT_STAGE.get(self.state.stage)
        if next_stage is None:
            return self._play_next()
        return SequencerStep(effects=self._enter_stage(next_stage))

    def restart(self) -> SequencerStep:
        """Abandon the running celebration and start the next queued one."""
        return self._play_next()

    def _enter_stage(self, stage: str) -> List[Effect]:
        self.state.stage = stage
        self.state.token += 1
        return [
            StartTimer(
                slot=SLOT_STAGE,
                delay=self.timings.stage_length(stage),
                token=self.state.token,
            )
        ]

    def _play_next(self) -> SequencerStep:
        effects: List[Effect] = [CancelTimer(slot=SLOT_STAGE)]
        self.state.token += 1
        if not self.state.pending:
            was_active = self.state.active is not None
            self.state.active = None
            self.state.stage = STAGE_IDLE
            return SequencerStep(effects=effects, finished=was_active)
        self.state.active = self.state.pending.popleft()
        effects.extend(self._enter_stage(STAGE_PROGRESS))
        return SequencerStep(effects=effects, started=True)
