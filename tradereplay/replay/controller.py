"""
Replay clock - drives a tick index over a recorded data sequence.

The controller is data-agnostic: it only needs the length of the
sequence. Playback is a cooperative asyncio task that polls a monotonic
clock once per frame and advances one tick whenever the configured
delay has elapsed, so the host event loop is never blocked.

Usage:
    controller = ReplayController(bars, on_tick_change=lambda i: broker.update(bars[i].close))
    controller.set_speed(50)
    controller.play()          # inside a running event loop
    await controller.join()    # returns once the end is reached or paused
"""
import asyncio
import math
import time
from typing import Callable, Literal, Optional, Sequence

import structlog

from tradereplay.core.config import MIN_PLAYBACK_SPEED_MS, ReplayConfig
from tradereplay.core.models import ReplayState

logger = structlog.get_logger(__name__)

TickCallback = Callable[[int], None]
StepDirection = Literal["forward", "backward"]


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class ReplayController:
    """
    Play/pause/seek/step state machine over ``len(data)`` ticks.

    States are paused (initial) and playing. While playing the index
    advances by one every ``playback_speed_ms``; on reaching the last
    tick the controller pauses itself. Out-of-range seeks and steps are
    clamped, never rejected. The tick callback fires only when the index
    actually changes.
    """

    def __init__(
        self,
        data: Sequence,
        config: Optional[ReplayConfig] = None,
        on_tick_change: Optional[TickCallback] = None,
    ):
        self.config = config or ReplayConfig()
        self._data = data
        self._on_tick_change = on_tick_change

        self._current_tick_index = self._clamp(self.config.initial_tick_index)
        self._playback_speed_ms = max(MIN_PLAYBACK_SPEED_MS, self.config.playback_speed_ms)
        self._paused = True

        self._task: Optional[asyncio.Task] = None
        self._run_id = 0
        self._last_update = 0.0

    # =========================================================================
    # Playback control
    # =========================================================================

    def play(self):
        """
        Start playback from the current tick.

        No-op if already playing or already at the last tick. Must be
        called while an asyncio event loop is running.
        """
        if not self._paused or self.is_at_end():
            return

        loop = asyncio.get_running_loop()
        self._paused = False
        self._run_id += 1
        self._last_update = time.monotonic()
        self._task = loop.create_task(self._playback_loop(self._run_id))

        logger.info(
            "replay.playback_started",
            tick=self._current_tick_index,
            total=len(self._data),
            speed_ms=self._playback_speed_ms,
        )

    def pause(self):
        """Stop playback and cancel the pending continuation."""
        if self._paused:
            return

        self._paused = True
        self._cancel_task()
        logger.info("replay.playback_paused", tick=self._current_tick_index)

    def toggle_play_pause(self):
        if self._paused:
            self.play()
        else:
            self.pause()

    async def join(self):
        """Wait until the current playback loop ends."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    # =========================================================================
    # Navigation
    # =========================================================================

    def step(self, direction: StepDirection = "forward"):
        """Move one tick forward or backward (clamped)."""
        if direction == "forward":
            offset = 1
        elif direction == "backward":
            offset = -1
        else:
            raise ValueError(f"Unknown step direction: {direction!r}")

        self.seek(self._current_tick_index + offset)

    def seek(self, index: int):
        """Jump to a tick index, clamped to [0, N-1]. NaN is ignored."""
        if isinstance(index, float):
            if math.isnan(index):
                return
            # Bound before int() so infinities clamp instead of overflowing
            index = max(-1.0, min(index, float(len(self._data))))
        clamped = self._clamp(int(index))

        if clamped != self._current_tick_index:
            self._current_tick_index = clamped
            self._notify(clamped)

    def set_current_tick_index(self, index: int):
        self.seek(index)

    def set_speed(self, speed_ms: float):
        """Set the delay between ticks, floored at the minimum."""
        self._playback_speed_ms = max(MIN_PLAYBACK_SPEED_MS, float(speed_ms))

    def get_progress(self) -> float:
        """Position as a fraction in [0, 1] (0 when N <= 1)."""
        if len(self._data) <= 1:
            return 0.0
        return self._current_tick_index / (len(self._data) - 1)

    def set_progress(self, progress: float):
        """Seek to a fraction of the sequence, clamped to [0, 1]."""
        if not math.isfinite(progress):
            return
        progress = min(1.0, max(0.0, progress))
        # Round half up
        index = math.floor(progress * (len(self._data) - 1) + 0.5)
        self.seek(index)

    # =========================================================================
    # Data and callbacks
    # =========================================================================

    def set_data(self, data: Sequence, reset_state: bool = False):
        """
        Replace the replayed sequence.

        Args:
            data: New data sequence
            reset_state: Rewind to tick 0 and pause instead of clamping
        """
        self._data = data

        if reset_state:
            self._paused = True
            self._cancel_task()
            self._current_tick_index = 0
        else:
            self.seek(self._current_tick_index)

    def set_on_tick_change(self, callback: Optional[TickCallback]):
        self._on_tick_change = callback

    def destroy(self):
        """Stop playback and drop the tick callback."""
        self.pause()
        self._on_tick_change = None

    # =========================================================================
    # State accessors
    # =========================================================================

    @property
    def current_tick_index(self) -> int:
        return self._current_tick_index

    @property
    def playback_speed_ms(self) -> float:
        return self._playback_speed_ms

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def data_length(self) -> int:
        return len(self._data)

    def is_at_end(self) -> bool:
        return self._current_tick_index >= len(self._data) - 1

    def is_at_start(self) -> bool:
        return self._current_tick_index <= 0

    def get_state(self) -> ReplayState:
        return ReplayState(
            current_tick_index=self._current_tick_index,
            playback_speed_ms=self._playback_speed_ms,
            is_paused=self._paused,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _clamp(self, index: int) -> int:
        return max(0, min(index, len(self._data) - 1))

    def _notify(self, index: int):
        if self._on_tick_change is None:
            return
        try:
            self._on_tick_change(index)
        except Exception as e:
            logger.error("replay.tick_callback_error", tick=index, error=str(e), exc_info=True)

    def _cancel_task(self):
        task, self._task = self._task, None
        # A loop pausing itself from inside its own callback just exits
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _playback_loop(self, run_id: int):
        """Frame-paced loop; one iteration per frame while playing."""
        frame_ms = self.config.frame_interval_ms

        while not self._paused and run_id == self._run_id:
            if self.is_at_end():
                self._paused = True
                self._task = None
                logger.info("replay.playback_finished", tick=self._current_tick_index)
                break

            now = time.monotonic()
            elapsed_ms = (now - self._last_update) * 1000

            if elapsed_ms >= self._playback_speed_ms:
                self._current_tick_index += 1
                self._last_update = now
                self._notify(self._current_tick_index)
                continue

            wait_ms = min(frame_ms, self._playback_speed_ms - elapsed_ms)
            await asyncio.sleep(wait_ms / 1000)
