import logging

import pytest

from auction_board.services.effects import UpdateIncentiveFlags
from auction_board.services.flag_outbox import FlagDeliveryError, FlagOutbox

CLEAR_NOW = UpdateIncentiveFlags("gym", {"displayNow": False})
CLEAR_UNTIL = UpdateIncentiveFlags("gym", {"displayUntilMet": False})


class _Sender:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, command):
        self.calls.append(command)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return {"id": command.incentive_id}


def test_duplicate_commands_are_suppressed_while_pending():
    outbox = FlagOutbox()

    assert outbox.submit(CLEAR_NOW) is True
    assert outbox.submit(UpdateIncentiveFlags("gym", {"displayNow": False})) is False
    assert outbox.submit(CLEAR_UNTIL) is True

    assert len(outbox) == 2
    assert outbox.pending_commands() == [CLEAR_NOW, CLEAR_UNTIL]


@pytest.mark.anyio("asyncio")
async def test_successful_delivery_empties_the_outbox():
    outbox = FlagOutbox()
    outbox.submit(CLEAR_NOW)
    sender = _Sender()

    report = await outbox.deliver_pending(sender)

    assert report.delivered == [CLEAR_NOW.key]
    assert sender.calls == [CLEAR_NOW]
    assert outbox.has_pending() is False
    assert outbox.submit(CLEAR_NOW) is True


@pytest.mark.anyio("asyncio")
async def test_command_in_flight_blocks_resubmission():
    outbox = FlagOutbox()
    outbox.submit(CLEAR_NOW)
    seen_during_send = []

    async def sender(command):
        seen_during_send.append(outbox.submit(command))
        seen_during_send.append(outbox.is_pending(command.key))

    await outbox.deliver_pending(sender)

    assert seen_during_send == [False, True]
    assert len(outbox) == 0


@pytest.mark.anyio("asyncio")
async def test_retryable_failures_stay_pending_until_retries_run_out():
    outbox = FlagOutbox(max_retries=2)
    outbox.submit(CLEAR_NOW)
    sender = _Sender(
        FlagDeliveryError("busy", status_code=503),
        FlagDeliveryError("offline", retryable=True),
        FlagDeliveryError("busy", status_code=503),
    )

    first = await outbox.deliver_pending(sender)
    second = await outbox.deliver_pending(sender)
    assert first.retrying == [CLEAR_NOW.key]
    assert second.retrying == [CLEAR_NOW.key]
    assert outbox.has_pending() is True

    third = await outbox.deliver_pending(sender)

    assert third.dropped == [CLEAR_NOW.key]
    assert outbox.has_pending() is False
    assert len(sender.calls) == 3


@pytest.mark.anyio("asyncio")
async def test_non_retryable_failures_are_dropped_and_logged(caplog, monkeypatch):
    monkeypatch.setattr(logging.getLogger("auction_board"), "propagate", True)
    outbox = FlagOutbox()
    outbox.submit(CLEAR_NOW)
    outbox.submit(CLEAR_UNTIL)
    sender = _Sender(FlagDeliveryError("missing", status_code=404))

    with caplog.at_level("ERROR", logger="auction_board.services.flag_outbox"):
        report = await outbox.deliver_pending(sender)

    assert report.dropped == [CLEAR_NOW.key]
    assert report.delivered == [CLEAR_UNTIL.key]
    assert "Dropping flag update" in caplog.text
    assert len(outbox) == 0


@pytest.mark.anyio("asyncio")
async def test_unexpected_errors_are_not_retried():
    outbox = FlagOutbox()
    outbox.submit(CLEAR_NOW)

    report = await outbox.deliver_pending(_Sender(RuntimeError("boom")))

    assert report.dropped == [CLEAR_NOW.key]


def test_from_settings_reads_policy():
    outbox = FlagOutbox.from_settings({"retryable_statuses": [500], "max_retries": 5})

    assert outbox.retryable_statuses == frozenset({500})
    assert outbox.max_retries == 5
