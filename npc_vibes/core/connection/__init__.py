"""Connection Core 패키지 — 공개 API"""

from npc_vibes.core.connection.models import (
    LEVEL_DETAILS,
    ConnectionLevel,
    ConnectionRecord,
    InteractionEntry,
    LevelDetail,
)
from npc_vibes.core.connection.progression import (
    PROGRESSION_REQUIREMENTS,
    SUGGESTION_TABLE,
    connection_advice,
    is_valid_transition,
    progression_requirements,
    suggest_next_level,
)

__all__ = [
    "LEVEL_DETAILS",
    "ConnectionLevel",
    "ConnectionRecord",
    "InteractionEntry",
    "LevelDetail",
    "PROGRESSION_REQUIREMENTS",
    "SUGGESTION_TABLE",
    "connection_advice",
    "is_valid_transition",
    "progression_requirements",
    "suggest_next_level",
]
