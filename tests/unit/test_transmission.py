"""Coalescing command loop."""

import asyncio

import pytest

from trainerctl.transmission import CommandSlot, CommandTransmitter, ResistanceCommand


def _encode(command):
    return bytes([round(command.resistance_fraction * 100)])


class FakeLink:
    """Records writes; fails the first ``failures`` of them."""

    def __init__(self, failures=0):
        self.failures = failures
        self.writes = []
        self.on_write = None

    async def write(self, data):
        self.writes.append(data)
        if self.on_write is not None:
            self.on_write(len(self.writes))
        if self.failures > 0:
            self.failures -= 1
            return False
        return True


def test_command_clamps_fraction():
    assert ResistanceCommand(1.5).resistance_fraction == 1.0
    assert ResistanceCommand(-0.1).resistance_fraction == 0.0
    assert ResistanceCommand(0.2, 3.0).target_grade_percent == 3.0


def test_slot_compare_and_clear():
    slot = CommandSlot()
    first, second = ResistanceCommand(0.1), ResistanceCommand(0.2)
    slot.put(first)
    slot.put(second)
    assert slot.clear_if(first) is False
    assert slot.peek() is second
    assert slot.clear_if(second) is True
    assert slot.peek() is None


@pytest.mark.asyncio
async def test_only_latest_command_is_sent():
    link = FakeLink()
    transmitter = CommandTransmitter(link.write, _encode, tick=0.01, backoff=0.02)
    transmitter.queue(ResistanceCommand(0.10))
    transmitter.queue(ResistanceCommand(0.40))
    transmitter.start()
    await asyncio.sleep(0.1)
    await transmitter.aclose()

    assert link.writes == [bytes([40])]
    assert transmitter.pending is None
    assert transmitter.sent_count == 1


@pytest.mark.asyncio
async def test_failed_write_is_retried():
    link = FakeLink(failures=1)
    transmitter = CommandTransmitter(link.write, _encode, tick=0.01, backoff=0.02)
    transmitter.queue(ResistanceCommand(0.25))
    transmitter.start()
    await asyncio.sleep(0.15)
    await transmitter.aclose()

    assert link.writes == [bytes([25]), bytes([25])]
    assert transmitter.failed_count == 1
    assert transmitter.sent_count == 1
    assert transmitter.pending is None


@pytest.mark.asyncio
async def test_command_queued_during_write_survives():
    link = FakeLink()
    transmitter = CommandTransmitter(link.write, _encode, tick=0.01, backoff=0.02)

    def queue_newer(count):
        if count == 1:
            transmitter.queue(ResistanceCommand(0.60))

    link.on_write = queue_newer
    transmitter.queue(ResistanceCommand(0.30))
    transmitter.start()
    await asyncio.sleep(0.1)
    await transmitter.aclose()

    assert link.writes == [bytes([30]), bytes([60])]


@pytest.mark.asyncio
async def test_unencodable_command_is_dropped():
    link = FakeLink()

    def encode(command):
        raise ValueError("no endpoint")

    transmitter = CommandTransmitter(link.write, encode, tick=0.01, backoff=0.02)
    transmitter.queue(ResistanceCommand(0.5))
    transmitter.start()
    await asyncio.sleep(0.05)
    await transmitter.aclose()

    assert link.writes == []
    assert transmitter.pending is None


@pytest.mark.asyncio
async def test_stop_clears_pending_and_halts_writes():
    link = FakeLink()
    transmitter = CommandTransmitter(link.write, _encode, tick=0.01, backoff=0.02)
    transmitter.start()
    await asyncio.sleep(0.02)

    transmitter.stop()
    transmitter.queue(ResistanceCommand(0.5))
    await asyncio.sleep(0.05)

    assert link.writes == []
    assert not transmitter.is_running
    await transmitter.aclose()
    assert transmitter.pending is None


@pytest.mark.asyncio
async def test_restart_before_loop_exits_keeps_sending():
    link = FakeLink()
    transmitter = CommandTransmitter(link.write, _encode, tick=0.01, backoff=0.02)
    transmitter.start()
    await asyncio.sleep(0.02)

    # The old loop is still sleeping when it is restarted
    transmitter.stop()
    transmitter.start()
    transmitter.queue(ResistanceCommand(0.5))
    await asyncio.sleep(0.1)

    assert transmitter.is_running
    assert link.writes == [bytes([50])]
    assert transmitter.pending is None
    await transmitter.aclose()
