"""Visibility Core 패키지 — 공개 API"""

from npc_vibes.core.visibility.oracle import (
    SIGHT_CACHE_SECONDS,
    LineOfSight,
    VisibilityOracle,
    effective_sight_range,
    is_valid_pair,
)

__all__ = [
    "SIGHT_CACHE_SECONDS",
    "LineOfSight",
    "VisibilityOracle",
    "effective_sight_range",
    "is_valid_pair",
]
