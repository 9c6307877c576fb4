"""Connection 진행 규칙

전이 검증과 상호작용 횟수 기반 진행 제안.
제안은 권고일 뿐 저장소를 변경하지 않는다.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from npc_vibes.core.connection.models import ConnectionLevel
from npc_vibes.core.disposition.models import DispositionType


@dataclass(frozen=True)
class SuggestionThresholds:
    """disposition별 진행 제안 임계 상호작용 횟수"""

    to_acquaintance: int
    to_friend: Optional[int] = None  # None: 자동 제안 없음


SUGGESTION_TABLE: Dict[DispositionType, SuggestionThresholds] = {
    DispositionType.AWESTRUCK: SuggestionThresholds(to_acquaintance=3, to_friend=5),
    DispositionType.CURIOUS: SuggestionThresholds(to_acquaintance=2, to_friend=4),
    DispositionType.REPULSED: SuggestionThresholds(to_acquaintance=5),
    DispositionType.NONE: SuggestionThresholds(to_acquaintance=3, to_friend=6),
}


@dataclass(frozen=True)
class ProgressionRequirement:
    to: ConnectionLevel
    requirements: List[str]


PROGRESSION_REQUIREMENTS: Dict[ConnectionLevel, ProgressionRequirement] = {
    ConnectionLevel.STRANGER: ProgressionRequirement(
        to=ConnectionLevel.ACQUAINTANCE,
        requirements=[
            "Have at least one meaningful interaction",
            "Exchange names or basic information",
            "No hostile actions taken",
        ],
    ),
    ConnectionLevel.ACQUAINTANCE: ProgressionRequirement(
        to=ConnectionLevel.FRIEND,
        requirements=[
            "Multiple positive interactions",
            "Provide assistance or do a favor",
            "Share personal information or experiences",
            "Demonstrate trustworthiness",
        ],
    ),
    ConnectionLevel.FRIEND: ProgressionRequirement(
        to=ConnectionLevel.BEST_FRIEND,
        requirements=[
            "Significant shared experiences",
            "Mutual trust and respect established",
            "Provide major assistance or make sacrifices",
            "Deep personal connection formed",
        ],
    ),
}


def is_valid_transition(current: ConnectionLevel, proposed: ConnectionLevel) -> bool:
    """하락·유지는 항상 허용, 상승은 1단계까지만."""
    if proposed.index <= current.index:
        return True
    return proposed.index == current.index + 1


def _as_disposition(value: Union[DispositionType, str, None]) -> DispositionType:
    if isinstance(value, DispositionType):
        return value
    try:
        return DispositionType(value)
    except ValueError:
        return DispositionType.NONE


def suggest_next_level(
    disposition: Union[DispositionType, str, None],
    interaction_count: int,
    current: ConnectionLevel,
) -> ConnectionLevel:
    """상호작용 횟수 기반 진행 제안.

    BestFriend로의 자동 제안은 없다 (GM 판단 필요).
    제안이 유효 전이가 아니면 현재 단계 그대로 반환.
    """
    thresholds = SUGGESTION_TABLE[_as_disposition(disposition)]
    suggested = current

    if current is ConnectionLevel.STRANGER:
        if interaction_count >= thresholds.to_acquaintance:
            suggested = ConnectionLevel.ACQUAINTANCE
    elif current is ConnectionLevel.ACQUAINTANCE:
        if thresholds.to_friend is not None and interaction_count >= thresholds.to_friend:
            suggested = ConnectionLevel.FRIEND

    if not is_valid_transition(current, suggested):
        return current
    return suggested


def progression_requirements(level: ConnectionLevel) -> Optional[ProgressionRequirement]:
    """다음 단계 요건. BestFriend는 None."""
    return PROGRESSION_REQUIREMENTS.get(level)


def connection_advice(
    disposition: Union[DispositionType, str, None], level: ConnectionLevel
) -> str:
    """disposition과 현재 단계에 맞춘 조언 문자열"""
    kind = _as_disposition(disposition)
    advice: List[str] = []
    is_stranger = level is ConnectionLevel.STRANGER

    if kind is DispositionType.AWESTRUCK:
        advice.append(
            "This character inspires you. Building a connection could lead "
            "to mentorship or deep friendship."
        )
        if is_stranger:
            advice.append(
                "Try to engage them in conversation about their impressive qualities."
            )
    elif kind is DispositionType.CURIOUS:
        advice.append(
            "Your curiosity about this character creates natural "
            "opportunities for connection."
        )
        if is_stranger:
            advice.append(
                "Ask questions and show genuine interest in their background "
                "or expertise."
            )
    elif kind is DispositionType.REPULSED:
        advice.append(
            "Despite your initial negative reaction, relationships can change "
            "over time."
        )
        advice.append(
            "Try to understand what caused your repulsion and whether it can "
            "be overcome."
        )
        if is_stranger:
            advice.append(
                "Small positive interactions might help overcome your initial "
                "impression."
            )
    else:
        advice.append(
            "No strong initial impression means you can build this "
            "relationship naturally."
        )

    requirement = progression_requirements(level)
    if requirement is not None:
        advice.append(
            f"To become {requirement.to.value.lower()}s, consider: "
            f"{', '.join(requirement.requirements)}."
        )

    return " ".join(advice)
