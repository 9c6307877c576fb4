"""Outcome Generator — d20 1회 굴림 → disposition

분포 고정: 1 → repulsed, 18·19 → curious, 20 → awestruck, 나머지 → none.
확률 5% / 10% / 5% / 80%. 재시도·부수효과 없음.
"""

import random
from typing import Dict, Iterable, Optional

from npc_vibes.core.disposition.models import DispositionType, RollOutcome
from npc_vibes.core.entities import TokenView

DIE_SIZE = 20

DISPOSITION_THRESHOLDS: Dict[DispositionType, frozenset] = {
    DispositionType.REPULSED: frozenset({1}),
    DispositionType.CURIOUS: frozenset({18, 19}),
    DispositionType.AWESTRUCK: frozenset({20}),
}

DISPOSITION_COLORS: Dict[DispositionType, str] = {
    DispositionType.REPULSED: "#ff4444",
    DispositionType.CURIOUS: "#ffdd44",
    DispositionType.AWESTRUCK: "#44ff44",
}

_DESCRIPTIONS: Dict[DispositionType, str] = {
    DispositionType.REPULSED: (
        "{source} feels an immediate sense of repulsion towards {target}. "
        "Something about them just rubs the wrong way."
    ),
    DispositionType.CURIOUS: (
        "{source} finds themselves intrigued by {target}. "
        "There's something compelling about them that draws attention."
    ),
    DispositionType.AWESTRUCK: (
        "{source} is struck with awe upon seeing {target}. "
        "Their presence is truly impressive and inspiring."
    ),
    DispositionType.NONE: (
        "{source} notices {target} but feels no particular emotional reaction."
    ),
}


def determine_disposition(roll: int) -> DispositionType:
    """굴림값 → disposition. 범위 밖 값은 none."""
    for disposition, values in DISPOSITION_THRESHOLDS.items():
        if roll in values:
            return disposition
    return DispositionType.NONE


def describe_outcome(
    source_name: str, target_name: str, disposition: DispositionType, roll: int
) -> str:
    """표시용 설명문. 입력이 같으면 항상 같은 문자열."""
    text = _DESCRIPTIONS[disposition].format(source=source_name, target=target_name)
    return f"{text} (Rolled {roll})"


def disposition_color(disposition: DispositionType) -> str:
    return DISPOSITION_COLORS.get(disposition, "#ffffff")


def summarize_rolls(rolls: Iterable[int]) -> Dict[str, float]:
    """굴림값 목록의 disposition별 개수와 백분율 (디버그·분포 점검용)"""
    counts = {d.value: 0 for d in DispositionType}
    total = 0
    for roll in rolls:
        counts[determine_disposition(roll).value] += 1
        total += 1

    stats: Dict[str, float] = {"total": total}
    stats.update(counts)
    if total > 0:
        for key, count in counts.items():
            stats[f"{key}_percent"] = round(count / total * 100, 1)
    return stats


class OutcomeGenerator:
    """방향별 독립 굴림.

    rng를 주입하면 테스트에서 굴림값을 고정할 수 있다.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def roll_die(self) -> int:
        return self._rng.randint(1, DIE_SIZE)

    def roll(self, source: TokenView, target: TokenView) -> RollOutcome:
        value = self.roll_die()
        disposition = determine_disposition(value)
        return RollOutcome(
            source_id=source.actor_id or "",
            target_id=target.actor_id or "",
            source_role=source.role,
            disposition=disposition,
            roll=value,
            description=describe_outcome(source.name, target.name, disposition, value),
        )
