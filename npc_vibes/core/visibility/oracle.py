"""Visibility Oracle — 방향성 시야 판정

판정 파이프라인 (순서대로 단락):
1. 같은 씬
2. 대상이 숨김이면 GM만 볼 수 있음
3. 관찰자 시야 활성 (NPC 관찰자는 면제 정책)
4. 시야 반경 (토큰 오버라이드 → 암시야 → 저광시야 → 월드 기본값)
5. 장애물 (호스트 시야선 판정, ignore_walls면 통과)

결과는 방향쌍별로 짧게 메모이즈한다. 내부 에러는 '안 보임'으로 처리.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Tuple

from npc_vibes.core.entities import ClientContext, EntityRole, TokenView
from npc_vibes.core.geometry import Point, distance
from npc_vibes.core.logging import get_logger
from npc_vibes.core.options import VibeOptions

logger = get_logger(__name__)

SIGHT_CACHE_SECONDS = 1.0


class LineOfSight(ABC):
    """호스트 시야선 판정 능력 (광선 vs 씬 장애물)"""

    @abstractmethod
    def is_clear(self, scene_id: str, origin: Point, destination: Point) -> bool:
        """origin → destination 사이에 시야를 막는 장애물이 없으면 True"""
        ...


def is_valid_pair(observer: TokenView, subject: TokenView) -> bool:
    """서로 다른 토큰이며 PC 1 + NPC 1 조합인지"""
    if observer is None or subject is None:
        return False
    if not observer.actor_id or not subject.actor_id:
        return False
    if observer.token_id == subject.token_id:
        return False
    return {observer.role, subject.role} == {EntityRole.PC, EntityRole.NPC}


def effective_sight_range(token: TokenView, options: VibeOptions) -> float:
    """우선순위: 토큰 오버라이드 → 암시야 → 저광시야 → 월드 기본값"""
    for candidate in (token.sight_range, token.darkvision, token.low_light_vision):
        if candidate is not None and candidate > 0:
            return float(candidate)
    return float(options.default_sight_range)


class VisibilityOracle:
    """can_see(observer, subject) 판정 + 방향쌍 메모이즈"""

    def __init__(
        self,
        line_of_sight: LineOfSight,
        options: VibeOptions,
        client: ClientContext,
        cache_seconds: float = SIGHT_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._los = line_of_sight
        self._options = options
        self._client = client
        self._cache_seconds = cache_seconds
        self._clock = clock
        # (observer 토큰 ID, subject 토큰 ID) → (결과, 판정 시각)
        self._cache: Dict[Tuple[str, str], Tuple[bool, float]] = {}

    @staticmethod
    def cache_key(observer: TokenView, subject: TokenView) -> Tuple[str, str]:
        return (observer.token_id, subject.token_id)

    def can_see(self, observer: TokenView, subject: TokenView) -> bool:
        if not is_valid_pair(observer, subject):
            return False

        key = self.cache_key(observer, subject)
        now = self._clock()
        cached = self._cache.get(key)
        if cached is not None and now - cached[1] < self._cache_seconds:
            logger.debug(f"Sight cache hit: {key} = {cached[0]}")
            return cached[0]

        try:
            result = self._evaluate(observer, subject)
        except Exception:
            logger.warning(
                f"Sight check failed, treating as not visible: {key}", exc_info=True
            )
            result = False

        self._cache[key] = (result, now)
        return result

    def _evaluate(self, observer: TokenView, subject: TokenView) -> bool:
        if observer.scene_id is None or observer.scene_id != subject.scene_id:
            return False

        if subject.hidden and not self._client.is_gm:
            return False

        if not observer.vision_enabled:
            exempt = self._options.npc_vision_exempt and observer.role is EntityRole.NPC
            if not exempt:
                return False

        sight_range = effective_sight_range(observer, self._options)
        if distance(observer.position, subject.position) > sight_range:
            return False

        if self._options.ignore_walls:
            return True

        return self._los.is_clear(observer.scene_id, observer.center, subject.center)

    def invalidate_token(self, token_id: str) -> int:
        """해당 토큰이 관찰자·대상인 메모를 모두 제거. 제거 건수 반환."""
        stale = [key for key in self._cache if token_id in key]
        for key in stale:
            del self._cache[key]
        return len(stale)

    def clear(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)
