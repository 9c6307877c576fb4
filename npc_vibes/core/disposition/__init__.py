"""Disposition Core 패키지 — 공개 API"""

from npc_vibes.core.disposition.models import (
    DispositionRecord,
    DispositionType,
    RollOutcome,
)
from npc_vibes.core.disposition.roller import (
    DISPOSITION_COLORS,
    DISPOSITION_THRESHOLDS,
    OutcomeGenerator,
    describe_outcome,
    determine_disposition,
    disposition_color,
    summarize_rolls,
)

__all__ = [
    "DispositionRecord",
    "DispositionType",
    "RollOutcome",
    "DISPOSITION_COLORS",
    "DISPOSITION_THRESHOLDS",
    "OutcomeGenerator",
    "describe_outcome",
    "determine_disposition",
    "disposition_color",
    "summarize_rolls",
]
