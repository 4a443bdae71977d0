from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Union

from analysis.utils import DEFAULT_PREVIEW_FPS
from .interpolator import AnimationFrame, KeyframeAnimator


logger = logging.getLogger(__name__)

FrameCallback = Callable[[AnimationFrame], Union[None, Awaitable[None]]]


class AnimationLoop:
    """
    Drives a KeyframeAnimator on its own clock, independent of camera cadence.

    Each tick computes one frame, hands it to `on_frame`, then sleeps one frame
    interval and schedules the next tick. Only one tick is ever in flight.
    stop() cancels the pending tick; it is safe to call more than once.
    """

    def __init__(
        self,
        animator: KeyframeAnimator,
        on_frame: FrameCallback,
        *,
        fps: float = DEFAULT_PREVIEW_FPS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if fps <= 0:
            raise ValueError("fps must be positive")
        self.animator = animator
        self.on_frame = on_frame
        self.interval = 1.0 / float(fps)
        self.clock = clock or time.monotonic
        self.started_at: Optional[float] = None
        self.frames = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return self.clock() - self.started_at

    async def tick(self) -> AnimationFrame:
        frame = self.animator.frame_at(self.elapsed())
        result = self.on_frame(frame)
        if inspect.isawaitable(result):
            await result
        self.frames += 1
        return frame

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        """Schedule the loop on the running event loop."""
        if self.running:
            return self._task
        self.started_at = self.clock()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug("animation loop started at %.1f fps", 1.0 / self.interval)
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("animation loop stopped after %d frames", self.frames)

    async def run_for(self, frames: int) -> None:
        """Run exactly `frames` ticks in the current task (used by renderers and tests)."""
        if self.started_at is None:
            self.started_at = self.clock()
        for i in range(frames):
            await self.tick()
            if i + 1 < frames:
                await asyncio.sleep(self.interval)
