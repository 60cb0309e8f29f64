import pytest

from auction_board.services.board_runtime import BoardOrchestrator, BoardPoller
from auction_board.services.board_view import REGION_CELEBRATION, REGION_INCENTIVE, REGION_SCROLLER
from auction_board.services.celebration import STAGE_CLOSING, STAGE_MESSAGE, STAGE_PROGRESS
from auction_board.services.display_scheduler import (
    MODE_CELEBRATION,
    MODE_CYCLE,
    MODE_PRIORITY,
    MODE_SCROLLER,
    DisplaySnapshot,
)
from auction_board.services.effects import UpdateIncentiveFlags
from auction_board.services.flag_outbox import FlagOutbox
from auction_board.services.status_feed import BoardSnapshot
from auction_board.utils.clock import ManualClock


def _gym(**overrides):
    raw = {"id": "gym", "name": "Gym", "target": 1000, "active": True}
    raw.update(overrides)
    return raw


class _RecordingRenderer:
    def __init__(self):
        self.views = []

    def render(self, view):
        self.views.append(view)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def orchestrator(clock):
    return BoardOrchestrator(clock, FlagOutbox(), renderer=_RecordingRenderer())


def test_display_now_plays_once_and_clears_the_flag(orchestrator, clock):
    view = orchestrator.apply_snapshot(DisplaySnapshot.from_raw(100, [_gym(displayNow=True)]))

    assert view.mode == MODE_PRIORITY
    assert view.region == REGION_INCENTIVE
    assert view.card.id == "gym"
    assert orchestrator.outbox.pending_commands() == [
        UpdateIncentiveFlags("gym", {"displayNow": False})
    ]
    assert [handle.when for handle in clock.pending()] == [10.0]

    clock.advance(10.0)

    assert orchestrator.view.mode == MODE_SCROLLER
    assert orchestrator.view.region == REGION_SCROLLER
    assert clock.pending() == []


def test_goal_crossing_runs_a_fifteen_second_celebration(orchestrator, clock):
    orchestrator.apply_snapshot(DisplaySnapshot.from_raw(500, [_gym()]))

    view = orchestrator.apply_snapshot(DisplaySnapshot.from_raw(1200, [_gym()]))

    assert view.mode == MODE_CELEBRATION
    assert view.region == REGION_INCENTIVE
    assert view.celebration_stage == STAGE_PROGRESS
    assert len(clock.pending()) == 1

    clock.advance(5.0)
    assert orchestrator.view.region == REGION_CELEBRATION
    assert orchestrator.view.celebration_stage == STAGE_MESSAGE
    assert len(clock.pending()) == 1

    clock.advance(9.5)
    assert orchestrator.view.celebration_stage == STAGE_CLOSING
    assert len(clock.pending()) == 1

    clock.advance(0.5)
    assert orchestrator.view.mode == MODE_SCROLLER
    assert orchestrator.view.region == REGION_SCROLLER
    assert clock.pending() == []


def test_celebration_pauses_and_resumes_a_priority_queue(orchestrator, clock):
    orchestrator.apply_snapshot(
        DisplaySnapshot.from_raw(500, [_gym(), _gym(id="band", name="Band", displayNow=True)])
    )
    assert orchestrator.view.card.id == "band"

    clock.advance(4.0)
    orchestrator.apply_snapshot(
        DisplaySnapshot.from_raw(1200, [_gym(), _gym(id="band", name="Band", target=5000)])
    )
    assert orchestrator.view.mode == MODE_CELEBRATION
    assert len(clock.pending()) == 1

    clock.advance(15.0)

    assert orchestrator.view.mode == MODE_PRIORITY
    assert orchestrator.view.card.id == "band"


def test_shutdown_cancels_live_timers(orchestrator, clock):
    orchestrator.apply_snapshot(DisplaySnapshot.from_raw(100, [_gym(displayNow=True)]))

    orchestrator.shutdown()

    assert clock.pending() == []


def test_one_shot_extras_render_once(orchestrator):
    orchestrator.update_extras(milestone=1000, auction_name="Spring Gala")

    first = orchestrator.apply_snapshot(DisplaySnapshot.from_raw(1000, []))
    second = orchestrator.apply_snapshot(DisplaySnapshot.from_raw(1000, []))

    assert first.milestone == 1000
    assert second.milestone is None
    assert second.auction_name == "Spring Gala"
    assert orchestrator.renderer.views == [first, second]


class _QueueAssembler:
    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)

    async def poll(self):
        return self.snapshots.pop(0) if self.snapshots else None


class _RecordingStore:
    def __init__(self):
        self.commands = []

    async def update_incentive_state(self, command):
        self.commands.append(command)
        return {"id": command.incentive_id}


def _board_snapshot(total, incentives, **facts):
    return BoardSnapshot(
        total_raised=total,
        auction_facts={"incentives": incentives, **facts},
    )


@pytest.mark.anyio("asyncio")
async def test_poller_applies_snapshots_and_delivers_flags(orchestrator):
    store = _RecordingStore()
    poller = BoardPoller(
        _QueueAssembler(
            _board_snapshot(1500, [_gym(target=5000, displayNow=True)], auctionName="Gala")
        ),
        orchestrator,
        store,
    )

    view = await poller.poll_once()
    await poller.aclose()

    assert view.mode == MODE_PRIORITY
    assert view.auction_name == "Gala"
    assert view.milestone == 1000
    assert view.countdown.text == "--:--:--"
    assert store.commands == [UpdateIncentiveFlags("gym", {"displayNow": False})]
    assert orchestrator.outbox.has_pending() is False


@pytest.mark.anyio("asyncio")
async def test_poller_skips_cycles_without_data(orchestrator):
    poller = BoardPoller(_QueueAssembler(), orchestrator, _RecordingStore())

    assert await poller.poll_once() is None


@pytest.mark.anyio("asyncio")
async def test_scroller_cycle_starts_the_rotation(orchestrator):
    snapshots = [_board_snapshot(100, [_gym()]) for _ in range(3)]
    poller = BoardPoller(
        _QueueAssembler(*snapshots),
        orchestrator,
        _RecordingStore(),
        poll_interval=10.0,
        scroller_cycle_seconds=30.0,
    )

    first = await poller.poll_once()
    second = await poller.poll_once()
    third = await poller.poll_once()

    assert first.region == REGION_SCROLLER
    assert second.region == REGION_SCROLLER
    assert third.mode == MODE_CYCLE
    assert third.card.id == "gym"
