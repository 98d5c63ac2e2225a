"""
services/timer.py

시험 남은 시간을 1초마다 줄이는 카운트다운 드라이버.
실제 시간 계산은 컨트롤러의 tick()이 하고, 여기서는 주기 호출과 취소만 담당한다.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import config

logger = logging.getLogger(__name__)


class CountdownTimer:
    """
    asyncio 기반 반복 타이머.

    on_tick 안에서 cancel()을 호출해도 진행 중인 on_tick은 끝까지 실행되고,
    다음 주기부터 멈춘다.
    """

    def __init__(
        self,
        on_tick: Callable[[], Awaitable[None]],
        interval: float = config.TICK_INTERVAL,
    ):
        self._on_tick = on_tick
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self) -> None:
        if self.running:
            return
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        self._stopped = True
        if self._task is None or self._task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # 자기 자신(on_tick 내부)에서 호출된 경우 플래그만 세운다
        if self._task is not current:
            self._task.cancel()

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._interval)
            if self._stopped:
                break
            try:
                await self._on_tick()
            except Exception:
                logger.exception("타이머 tick 처리 중 오류")
