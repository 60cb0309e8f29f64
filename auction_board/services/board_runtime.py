from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from functools import partial
from typing import Any, Dict, Optional, Protocol, Tuple

from auction_board.services.board_view import (
    REGION_SCROLLER,
    AskMeTracker,
    BoardView,
    FeaturedRotator,
    MilestoneTracker,
    build_board_view,
    countdown_text,
)
from auction_board.services.display_scheduler import (
    DisplaySnapshot,
    OrchestratorState,
    SchedulerSettings,
    on_scroller_cycle,
    on_timer,
    reconcile,
)
from auction_board.services.effects import CancelTimer, Effect, StartTimer, UpdateIncentiveFlags
from auction_board.services.flag_outbox import FlagOutbox
from auction_board.services.status_feed import ConfigStoreClient, SnapshotAssembler
from auction_board.utils.clock import TimerBackend, TimerHandle

logger = logging.getLogger(__name__)

FEATURED_ROTATE_SECONDS = 15.0


class Renderer(Protocol):
    def render(self, view: BoardView) -> None: ...


class LoggingRenderer:
    """Default render adapter: logs whenever the bottom region changes hands."""

    def __init__(self) -> None:
        self._last: Optional[Tuple[Any, ...]] = None

    def render(self, view: BoardView) -> None:
        key = (
            view.mode,
            view.region,
            view.card.id if view.card else None,
            view.celebration_stage,
        )
        if view.milestone:
            logger.info("Milestone: $%s raised!", f"{view.milestone:,}")
        if key == self._last:
            return
        self._last = key
        if view.card is not None:
            logger.info(
                "Board %s/%s: %s %s (%s)",
                view.mode,
                view.region,
                view.card.name,
                view.card.target_text,
                view.card.percent_label,
            )
        elif view.celebration is not None:
            logger.info(
                "Board celebration [%s]: %s reached %s",
                view.celebration_stage,
                view.celebration.get("name"),
                view.celebration.get("amountText"),
            )
        else:
            logger.info("Board %s: scroller, total %s", view.mode, view.total_text)


class BoardOrchestrator:
    """
    Owns the single board state and performs the effects each transition asks for.

    One timer handle is kept per slot; a new start for a slot cancels the old
    handle first, and late firings are rejected by token inside the scheduler.
    """

    def __init__(
        self,
        timers: TimerBackend,
        outbox: FlagOutbox,
        renderer: Optional[Renderer] = None,
        settings: Optional[SchedulerSettings] = None,
    ) -> None:
        self.timers = timers
        self.outbox = outbox
        self.renderer = renderer
        self.settings = settings or SchedulerSettings()
        self.state = OrchestratorState()
        self.view: BoardView = build_board_view(self.state)
        self._handles: Dict[str, TimerHandle] = {}
        self._extras: Dict[str, Any] = {}

    def update_extras(self, **extras: Any) -> None:
        self._extras.update(extras)

    def apply_snapshot(self, snapshot: DisplaySnapshot) -> BoardView:
        return self._commit(reconcile(self.state, snapshot, self.settings))

    def scroller_cycle_complete(self) -> BoardView:
        return self._commit(on_scroller_cycle(self.state, self.settings))

    def shutdown(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def _timer_fired(self, slot: str, token: int) -> None:
        self._handles.pop(slot, None)
        try:
            self._commit(on_timer(self.state, slot, token, self.settings))
        except Exception:  # noqa: BLE001
            logger.exception("Board timer %s failed", slot)

    def _commit(self, result: Tuple[OrchestratorState, list]) -> BoardView:
        state, effects = result
        self.state = state
        for effect in effects:
            self._perform(effect)
        return self._render()

    def _perform(self, effect: Effect) -> None:
        if isinstance(effect, StartTimer):
            previous = self._handles.pop(effect.slot, None)
            if previous is not None:
                previous.cancel()
            self._handles[effect.slot] = self.timers.call_later(
                effect.delay, partial(self._timer_fired, effect.slot, effect.token)
            )
        elif isinstance(effect, CancelTimer):
            handle = self._handles.pop(effect.slot, None)
            if handle is not None:
                handle.cancel()
        elif isinstance(effect, UpdateIncentiveFlags):
            self.outbox.submit(effect)

    def _render(self) -> BoardView:
        view = replace(build_board_view(self.state), **self._extras)
        self.view = view
        # One-shot signals are shown once, not on every later redraw.
        self._extras.pop("milestone", None)
        ask_me = self._extras.get("ask_me")
        if ask_me is not None and (ask_me.delta is not None or ask_me.thank_you):
            self._extras["ask_me"] = replace(ask_me, delta=None, thank_you=False)
        if self.renderer is not None:
            self.renderer.render(view)
        return view


class BoardPoller:
    """Polls the feeds, drives the orchestrator and flushes flag updates in the background."""

    def __init__(
        self,
        assembler: SnapshotAssembler,
        orchestrator: BoardOrchestrator,
        store: ConfigStoreClient,
        *,
        poll_interval: float = 5.0,
        scroller_cycle_seconds: float = 30.0,
    ) -> None:
        self.assembler = assembler
        self.orchestrator = orchestrator
        self.store = store
        self.poll_interval = poll_interval
        self.scroller_cycle_seconds = scroller_cycle_seconds
        self.milestones = MilestoneTracker()
        self.ask_me = AskMeTracker()
        self.featured = FeaturedRotator()
        self._scroller_elapsed = 0.0
        self._featured_elapsed = 0.0
        self._delivery_task: Optional[asyncio.Task] = None

    async def poll_once(self) -> Optional[BoardView]:
        snapshot = await self.assembler.poll()
        if snapshot is None:
            return None

        facts = snapshot.auction_facts
        if self.featured.update(snapshot.items):
            self._featured_elapsed = 0.0
        elif self._featured_elapsed >= FEATURED_ROTATE_SECONDS:
            self.featured.advance()
            self._featured_elapsed = 0.0
        self._featured_elapsed += self.poll_interval

        announcements = facts.get("announcements")
        self.orchestrator.update_extras(
            auction_name=facts.get("auctionName"),
            announcements=list(announcements) if isinstance(announcements, list) else [],
            countdown=countdown_text(facts.get("endDateTime")),
            ask_me=self.ask_me.observe(snapshot.ask_me),
            milestone=(
                self.milestones.observe(snapshot.total_raised) if snapshot.status_ok else None
            ),
            featured=self.featured.page(),
        )
        view = self.orchestrator.apply_snapshot(snapshot.display_snapshot())

        if view.region == REGION_SCROLLER:
            self._scroller_elapsed += self.poll_interval
            if self._scroller_elapsed >= self.scroller_cycle_seconds:
                self._scroller_elapsed = 0.0
                view = self.orchestrator.scroller_cycle_complete()
        else:
            self._scroller_elapsed = 0.0

        self._schedule_delivery()
        return view

    def _schedule_delivery(self) -> None:
        if not self.orchestrator.outbox.has_pending():
            return
        if self._delivery_task is not None and not self._delivery_task.done():
            return
        self._delivery_task = asyncio.create_task(
            self.orchestrator.outbox.deliver_pending(self.store.update_incentive_state)
        )

    async def run_forever(self, stop: Optional[asyncio.Event] = None) -> None:
        stop = stop or asyncio.Event()
        logger.info("Board poller started (every %.1fs).", self.poll_interval)
        while not stop.is_set():
            try:
                await self.poll_once()
            except Exception:  # noqa: BLE001
                logger.exception("Board refresh failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
        await self.aclose()

    async def aclose(self) -> None:
        if self._delivery_task is not None:
            try:
                await self._delivery_task
            except Exception:  # noqa: BLE001
                logger.exception("Flag delivery failed during shutdown")
        self.orchestrator.shutdown()
        logger.info("Board poller stopped.")
