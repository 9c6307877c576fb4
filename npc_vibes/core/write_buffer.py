"""쓰기 병합 큐 (debounce)

변경마다 schedule()로 조용한 구간을 다시 시작한다.
마지막 변경 후 delay가 지나야 due()가 True가 된다.
타이머 구현과 무관: 호출자가 주기적으로 due()를 확인한다.
"""

import time
from typing import Callable, Optional

SAVE_DEBOUNCE_SECONDS = 1.0


class WriteBuffer:
    def __init__(
        self,
        delay: float = SAVE_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._delay = delay
        self._clock = clock
        self._last_change: Optional[float] = None
        self._coalesced: int = 0

    @property
    def pending(self) -> bool:
        return self._last_change is not None

    @property
    def coalesced(self) -> int:
        """현재 대기 중인 flush에 합쳐진 변경 수"""
        return self._coalesced

    def schedule(self) -> None:
        """변경 발생. 조용한 구간 재시작."""
        self._last_change = self._clock()
        self._coalesced += 1

    def due(self) -> bool:
        if self._last_change is None:
            return False
        return self._clock() - self._last_change >= self._delay

    def mark_flushed(self) -> None:
        self._last_change = None
        self._coalesced = 0

    def cancel(self) -> None:
        """대기 중인 flush 취소 (다음 변경이 다시 예약)"""
        self.mark_flushed()
