"""
Coalescing command transmission to the trainer control point.

Control commands are produced faster than a BLE link can reliably accept
them, and only the most recent target matters. Commands therefore go into a
single slot that newer commands overwrite, and one asyncio task drains the
slot to the link on a fixed tick, backing off after a failed write.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .core import COMMAND_BACKOFF_SECONDS, COMMAND_TICK_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResistanceCommand:
    """Target load for the trainer.

    Attributes:
        resistance_fraction: Load in [0, 1], clamped on construction
        target_grade_percent: Grade the fraction was derived from, if any
    """

    resistance_fraction: float
    target_grade_percent: Optional[float] = None

    def __post_init__(self) -> None:
        clamped = max(0.0, min(float(self.resistance_fraction), 1.0))
        object.__setattr__(self, "resistance_fraction", clamped)


class CommandSlot:
    """Holds at most one pending command; a newer command replaces it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: Optional[ResistanceCommand] = None

    def put(self, command: ResistanceCommand) -> None:
        with self._lock:
            self._pending = command

    def peek(self) -> Optional[ResistanceCommand]:
        with self._lock:
            return self._pending

    def clear_if(self, command: ResistanceCommand) -> bool:
        """Clear the slot only if it still holds this exact command.

        Returns:
            True if cleared, False if a newer command arrived meanwhile
        """
        with self._lock:
            if self._pending is command:
                self._pending = None
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._pending = None


WriteFunc = Callable[[bytes], Awaitable[bool]]
EncodeFunc = Callable[[ResistanceCommand], bytes]


class CommandTransmitter:
    """Drains the command slot to the link.

    Idle while the slot is empty. When a command is pending, one write is
    attempted per tick; a failed write keeps the command and waits the
    back-off before the next attempt.
    """

    def __init__(
        self,
        write: WriteFunc,
        encode: EncodeFunc,
        tick: float = COMMAND_TICK_SECONDS,
        backoff: float = COMMAND_BACKOFF_SECONDS,
    ) -> None:
        """Initialize transmitter.

        Args:
            write: Coroutine writing one buffer, True on success
            encode: Turns a command into the bytes for the current endpoint
            tick: Loop period in seconds
            backoff: Wait after a failed write in seconds
        """
        self._write = write
        self._encode = encode
        self._tick = tick
        self._backoff = backoff
        self._slot = CommandSlot()
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.sent_count = 0
        self.failed_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> Optional[ResistanceCommand]:
        """Command waiting to be sent, if any."""
        return self._slot.peek()

    def queue(self, command: ResistanceCommand) -> None:
        """Replace the pending command."""
        self._slot.put(command)

    def start(self) -> asyncio.Task:
        """Start the loop on the running event loop.

        A loop that was stopped but has not exited yet keeps running.
        """
        self._running = True
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self._run())
        return self._task

    def stop(self) -> None:
        """Stop the loop and drop any pending command.

        Safe to call from a disconnect callback; no new write is attempted
        once this returns.
        """
        self._running = False
        self._slot.clear()

    async def aclose(self) -> None:
        """Stop and wait until the loop has exited, including any write in flight."""
        self.stop()
        if self._task is None:
            return
        task, self._task = self._task, None
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Command loop ended with error: {e}")

    async def _run(self) -> None:
        logger.debug("Command loop started")
        while self._running:
            command = self._slot.peek()
            if command is not None:
                if await self._send(command):
                    self._slot.clear_if(command)
                else:
                    logger.info("Retrying resistance command...")
                    await asyncio.sleep(self._backoff)
                    continue
            await asyncio.sleep(self._tick)
        logger.debug("Command loop stopped")

    async def _send(self, command: ResistanceCommand) -> bool:
        try:
            payload = self._encode(command)
        except ValueError as e:
            # Dropped: retrying cannot make it encodable
            logger.error(f"Cannot encode {command}: {e}")
            return True

        success = await self._write(payload)
        if success:
            self.sent_count += 1
            logger.info(f"Sent resistance: {command.resistance_fraction * 100:.0f}%")
        else:
            self.failed_count += 1
        return success
