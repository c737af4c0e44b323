"""
Playback Position

The pipeline only needs to know where playback currently is. Any player that
exposes position_ms() can drive it; WallClockPlayer is a headless player that
advances with real time, used by the command line.
"""

import asyncio
import time
from typing import Callable, Protocol

import structlog

logger = structlog.get_logger()


class PlaybackClock(Protocol):
    """Current playback position of the bound video."""

    def position_ms(self) -> int:
        ...


class WallClockPlayer:
    """
    Headless player whose position follows the monotonic clock.

    Usage:
        player = WallClockPlayer(duration_ms=60000)
        player.add_ended_listener(pipeline.on_playback_ended)
        player.play()
        await player.wait_until_ended()
    """

    def __init__(
        self,
        duration_ms: int,
        start_ms: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.duration_ms = duration_ms
        self._clock = clock
        self._offset_ms = max(0, min(start_ms, duration_ms))
        self._started_at: float | None = None
        self._ended = False
        self._listeners: list[Callable[[], object]] = []

    @property
    def is_playing(self) -> bool:
        return self._started_at is not None

    @property
    def is_ended(self) -> bool:
        return self._ended

    def position_ms(self) -> int:
        position = self._offset_ms
        if self._started_at is not None:
            position += int((self._clock() - self._started_at) * 1000)
        return min(position, self.duration_ms)

    def play(self) -> None:
        if self._started_at is None and not self._ended:
            self._started_at = self._clock()

    def pause(self) -> None:
        if self._started_at is not None:
            self._offset_ms = self.position_ms()
            self._started_at = None

    def add_ended_listener(self, callback: Callable[[], object]) -> None:
        self._listeners.append(callback)

    async def wait_until_ended(self, poll_interval: float = 0.5) -> None:
        """Sleep until playback reaches the end, then notify listeners."""
        while self.position_ms() < self.duration_ms:
            remaining = (self.duration_ms - self.position_ms()) / 1000
            await asyncio.sleep(min(poll_interval, max(remaining, 0.01)))

        self.pause()
        self._ended = True
        logger.info("Playback ended", duration_ms=self.duration_ms)

        for callback in self._listeners:
            outcome = callback()
            if asyncio.iscoroutine(outcome):
                await outcome
