from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from auction_board.services.celebration import (
    CelebrationPayload,
    CelebrationSequencer,
    CelebrationState,
    CelebrationTimings,
    SequencerStep,
)
from auction_board.services.effects import (
    SLOT_DWELL,
    SLOT_STAGE,
    CancelTimer,
    Effect,
    StartTimer,
    UpdateIncentiveFlags,
)
from auction_board.services.goal_crossing import (
    CrossingEvent,
    UntilMetEntry,
    detect_goal_crossings,
)
from auction_board.services.incentive_catalog import (
    DEFAULT_DISPLAY_NAME,
    IdFactory,
    Incentive,
    normalize,
    positional_incentive_id,
)

logger = logging.getLogger(__name__)

MODE_SCROLLER = "scroller"
MODE_PRIORITY = "priority"
MODE_UNTIL = "until"
MODE_CYCLE = "cycle"
MODE_CELEBRATION = "celebration"

REASON_CYCLE = "cycle"


@dataclass(frozen=True)
class DisplaySnapshot:
    total_raised: float
    incentives: Tuple[Incentive, ...] = ()

    @classmethod
    def from_raw(
        cls,
        total_raised: Any,
        raw_incentives: Any,
        id_factory: IdFactory = positional_incentive_id,
    ) -> "DisplaySnapshot":
        try:
            total = float(total_raised)
        except (TypeError, ValueError):
            total = 0.0
        return cls(
            total_raised=total if math.isfinite(total) else 0.0,
            incentives=tuple(normalize(raw_incentives, id_factory)),
        )


@dataclass(frozen=True)
class SchedulerSettings:
    dwell_seconds: float = 10.0
    until_memory_max_absent_polls: Optional[int] = 720
    celebration: CelebrationTimings = field(default_factory=CelebrationTimings)

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "SchedulerSettings":
        return cls(
            dwell_seconds=float(settings.get("incentive_dwell_seconds", 10.0)),
            until_memory_max_absent_polls=settings.get(
                "until_memory_max_absent_polls", 720
            ),
            celebration=CelebrationTimings.from_settings(settings),
        )


@dataclass
class OrchestratorState:
    queue_mode: str = MODE_SCROLLER
    queue: List[str] = field(default_factory=list)
    queue_index: int = 0
    current_id: Optional[str] = None
    incentives: List[Incentive] = field(default_factory=list)
    total_raised: float = 0.0
    initialized: bool = False
    met_status: Dict[str, bool] = field(default_factory=dict)
    celebrated_ids: Set[str] = field(default_factory=set)
    until_memory: Dict[str, UntilMetEntry] = field(default_factory=dict)
    handled_display_now: Set[str] = field(default_factory=set)
    celebration: CelebrationState = field(default_factory=CelebrationState)
    resume_queue_after_celebration: bool = False
    cycle_after_celebration: bool = False
    dwell_token: int = 0

    @property
    def mode(self) -> str:
        if self.celebration.active is not None:
            return MODE_CELEBRATION
        return self.queue_mode

    def find(self, incentive_id: Optional[str]) -> Optional[Incentive]:
        if incentive_id is None:
            return None
        return next((item for item in self.incentives if item.id == incentive_id), None)

    def to_payload(self) -> Dict[str, Any]:
        """Return a JSON-friendly summary for logging and diagnostics."""
        active = self.celebration.active
        return {
            "mode": self.mode,
            "queueMode": self.queue_mode,
            "queue": list(self.queue),
            "queueIndex": self.queue_index,
            "currentId": self.current_id,
            "totalRaised": self.total_raised,
            "celebration": active.to_payload() if active else None,
            "celebrationStage": self.celebration.stage,
            "pendingCelebrations": len(self.celebration.pending),
            "untilMemory": sorted(self.until_memory),
        }


class DisplayModeScheduler:
    """
    Decides which display mode owns the bottom region.

    Operates on the state it is given and collects the side effects the
    runtime must perform. Use the module-level ``reconcile``/``on_timer``/
    ``on_scroller_cycle`` helpers to keep the caller's state untouched.
    """

    def __init__(
        self,
        state: OrchestratorState,
        settings: Optional[SchedulerSettings] = None,
    ) -> None:
        self.state = state
        self.settings = settings or SchedulerSettings()
        self.effects: List[Effect] = []
        self.celebrations = CelebrationSequencer(
            state.celebration, self.settings.celebration
        )

    # Entry points

    def apply_snapshot(self, snapshot: DisplaySnapshot) -> None:
        state = self.state
        previous_total = state.total_raised
        current_total = snapshot.total_raised
        if not math.isfinite(current_total):
            current_total = 0.0
        state.total_raised = current_total
        incentives = list(snapshot.incentives)

        result = detect_goal_crossings(
            state.met_status,
            previous_total,
            current_total,
            incentives,
            initialized=state.initialized,
            until_memory=state.until_memory,
            max_absent_polls=self.settings.until_memory_max_absent_polls,
        )
        state.met_status = dict(result.met_status)
        state.until_memory = dict(result.until_memory)
        state.celebrated_ids -= result.rearmed_ids
        state.incentives = incentives
        for event in result.events:
            self._queue_celebration(event)
            if event.clear_until_flag:
                self.effects.append(
                    UpdateIncentiveFlags(event.incentive_id, {"displayUntilMet": False})
                )
        state.celebrated_ids -= result.departed_ids
        state.initialized = True
        if result.evicted_ids:
            logger.info(
                "Forgot display-until-met goals absent for too long: %s",
                sorted(result.evicted_ids),
            )

        if not incentives:
            state.handled_display_now.clear()
            state.celebrated_ids.clear()
            if state.queue_mode != MODE_SCROLLER:
                self._cancel_dwell()
                state.queue = []
                state.queue_index = 0
                state.current_id = None
                state.queue_mode = MODE_SCROLLER
                state.resume_queue_after_celebration = False
            return

        flagged = {item.id for item in incentives if item.display_now}
        state.handled_display_now &= flagged

        if state.queue_mode == MODE_UNTIL and not self._unmet_until():
            self._complete_queue()
            return

        if state.current_id is not None and state.find(state.current_id) is None:
            state.current_id = None

        if state.queue_mode == MODE_CYCLE:
            rotation = self._cycle_candidates()
            if rotation:
                state.queue = [item.id for item in rotation]
                if state.queue_index >= len(state.queue):
                    state.queue_index = 0
            else:
                state.queue = []
                self._complete_queue()
                return

        self._process_signals()

    def timer_fired(self, slot: str, token: int) -> None:
        state = self.state
        if slot == SLOT_STAGE:
            self._apply_step(self.celebrations.advance(token))
            return
        if slot != SLOT_DWELL or token != state.dwell_token:
            return
        if self.celebrations.is_active() or state.queue_mode == MODE_SCROLLER:
            return
        state.queue_index += 1
        self._show_current()

    def scroller_cycle_complete(self) -> None:
        if self.state.queue_mode == MODE_SCROLLER:
            self._process_signals(REASON_CYCLE)

    # Signal evaluation

    def _process_signals(self, reason: Optional[str] = None) -> None:
        state = self.state
        if self.celebrations.is_active():
            return
        if not state.incentives:
            return

        requested = [
            item
            for item in state.incentives
            if item.display_now and item.id not in state.handled_display_now
        ]
        if requested:
            state.handled_display_now.update(item.id for item in requested)
            if state.queue_mode == MODE_PRIORITY and state.queue:
                for item in requested:
                    if item.id not in state.queue:
                        state.queue.append(item.id)
            else:
                self._start_queue(requested, MODE_PRIORITY)
            for item in requested:
                self.effects.append(UpdateIncentiveFlags(item.id, {"displayNow": False}))
            return

        # A playing priority queue finishes first; completion re-evaluates.
        if state.queue_mode == MODE_PRIORITY and state.queue:
            return

        unmet = self._unmet_until()
        if unmet:
            if state.queue_mode != MODE_UNTIL:
                self._start_queue(unmet, MODE_UNTIL)
            else:
                state.queue = [item.id for item in unmet]
                if state.queue_index >= len(state.queue):
                    state.queue_index = 0
            return

        if state.queue_mode != MODE_SCROLLER:
            return

        if reason == REASON_CYCLE:
            rotation = self._cycle_candidates()
            if rotation:
                self._start_queue(rotation, MODE_CYCLE)

    def _unmet_until(self) -> List[Incentive]:
        total = self.state.total_raised
        return [
            item
            for item in self.state.incentives
            if item.display_until_met and item.target > total
        ]

    def _cycle_candidates(self) -> List[Incentive]:
        return [item for item in self.state.incentives if item.active and item.has_name]

    # Queue playback

    def _start_queue(self, items: Iterable[Incentive], mode: str) -> None:
        state = self.state
        ids = [item.id for item in items if item.id]
        if not ids:
            return
        self._cancel_dwell()
        state.queue = ids
        state.queue_index = 0
        state.queue_mode = mode
        logger.debug("Starting %s queue with %d incentive(s).", mode, len(ids))
        if self.celebrations.is_active():
            state.resume_queue_after_celebration = True
            return
        state.resume_queue_after_celebration = False
        self._show_current()

    def _show_current(self) -> None:
        state = self.state
        while True:
            if not state.queue or state.queue_index >= len(state.queue):
                self._complete_queue()
                return
            incentive_id = state.queue[state.queue_index]
            if state.find(incentive_id) is None:
                state.queue_index += 1
                continue
            state.current_id = incentive_id
            self._arm_dwell()
            return

    def _complete_queue(self) -> None:
        state = self.state
        self._cancel_dwell()
        previous_mode = state.queue_mode
        state.queue = []
        state.queue_index = 0
        state.current_id = None
        if previous_mode == MODE_UNTIL:
            unmet = self._unmet_until()
            if unmet:
                self._start_queue(unmet, MODE_UNTIL)
                return
        state.queue_mode = MODE_SCROLLER
        state.resume_queue_after_celebration = False
        logger.debug("%s queue complete; returning to scroller.", previous_mode)
        # A finished until-met run hands straight over to the rotation.
        reason = REASON_CYCLE if previous_mode == MODE_UNTIL else None
        if reason and self.celebrations.is_active():
            state.cycle_after_celebration = True
        self._process_signals(reason)

    def _arm_dwell(self) -> None:
        self.state.dwell_token += 1
        self.effects.append(
            StartTimer(
                slot=SLOT_DWELL,
                delay=self.settings.dwell_seconds,
                token=self.state.dwell_token,
            )
        )

    def _cancel_dwell(self) -> None:
        self.state.dwell_token += 1
        self.effects.append(CancelTimer(slot=SLOT_DWELL))

    # Celebrations

    def _queue_celebration(self, event: CrossingEvent) -> None:
        state = self.state
        if event.incentive_id in state.celebrated_ids:
            return
        state.celebrated_ids.add(event.incentive_id)
        payload = CelebrationPayload(
            id=event.incentive_id,
            name=event.name.strip() or DEFAULT_DISPLAY_NAME,
            amount=max(event.target, state.total_raised),
            goal=event.target,
        )
        logger.info(
            "Incentive goal reached: %s (%s of %s)",
            payload.name,
            payload.amount,
            payload.goal,
        )
        self._apply_step(self.celebrations.enqueue(payload))

    def _apply_step(self, step: SequencerStep) -> None:
        self.effects.extend(step.effects)
        if step.started and not step.finished:
            self._pause_queue()
        if step.finished:
            self._celebrations_drained()

    def _pause_queue(self) -> None:
        state = self.state
        self._cancel_dwell()
        state.current_id = None
        if state.queue_mode != MODE_SCROLLER and state.queue:
            state.resume_queue_after_celebration = True

    def _celebrations_drained(self) -> None:
        state = self.state
        resume = state.resume_queue_after_celebration
        cycle = state.cycle_after_celebration
        state.resume_queue_after_celebration = False
        state.cycle_after_celebration = False
        if resume and state.queue_mode != MODE_SCROLLER and state.queue:
            self._show_current()
            return
        self._process_signals(REASON_CYCLE if cycle else None)


def _run(
    state: OrchestratorState,
    settings: Optional[SchedulerSettings],
    action,
) -> Tuple[OrchestratorState, List[Effect]]:
    working = copy.deepcopy(state)
    scheduler = DisplayModeScheduler(working, settings)
    action(scheduler)
    return working, scheduler.effects


def reconcile(
    state: OrchestratorState,
    snapshot: DisplaySnapshot,
    settings: Optional[SchedulerSettings] = None,
) -> Tuple[OrchestratorState, List[Effect]]:
    """Apply one poll cycle; returns the new state and the effects to perform."""
    return _run(state, settings, lambda scheduler: scheduler.apply_snapshot(snapshot))


def on_timer(
    state: OrchestratorState,
    slot: str,
    token: int,
    settings: Optional[SchedulerSettings] = None,
) -> Tuple[OrchestratorState, List[Effect]]:
    return _run(state, settings, lambda scheduler: scheduler.timer_fired(slot, token))


def on_scroller_cycle(
    state: OrchestratorState,
    settings: Optional[SchedulerSettings] = None,
) -> Tuple[OrchestratorState, List[Effect]]:
    return _run(state, settings, lambda scheduler: scheduler.scroller_cycle_complete())
