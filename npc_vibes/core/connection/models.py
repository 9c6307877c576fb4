"""Connection 도메인 모델

PC→NPC 관계 친밀도 4단계. disposition보다 느리게 변한다.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ConnectionLevel(str, Enum):
    """Connection 4단계 (순서 있음)"""

    STRANGER = "Stranger"
    ACQUAINTANCE = "Acquaintance"
    FRIEND = "Friend"
    BEST_FRIEND = "BestFriend"

    @property
    def index(self) -> int:
        return _LEVEL_ORDER.index(self)

    @classmethod
    def from_index(cls, index: int) -> "ConnectionLevel":
        return _LEVEL_ORDER[index]

    @classmethod
    def parse(cls, value: Optional[str]) -> "ConnectionLevel":
        """저장값 → 단계. 알 수 없는 값은 Stranger."""
        try:
            return cls(value)
        except ValueError:
            return cls.STRANGER


_LEVEL_ORDER: List[ConnectionLevel] = [
    ConnectionLevel.STRANGER,
    ConnectionLevel.ACQUAINTANCE,
    ConnectionLevel.FRIEND,
    ConnectionLevel.BEST_FRIEND,
]


@dataclass(frozen=True)
class LevelDetail:
    label: str
    description: str
    mechanical_effects: List[str] = field(default_factory=list)


LEVEL_DETAILS: Dict[ConnectionLevel, LevelDetail] = {
    ConnectionLevel.STRANGER: LevelDetail(
        label="Stranger",
        description="You have no meaningful relationship with this character.",
    ),
    ConnectionLevel.ACQUAINTANCE: LevelDetail(
        label="Acquaintance",
        description=(
            "You know this character casually, such as a shopkeeper "
            "you buy from regularly."
        ),
        mechanical_effects=[
            "Can attempt to Gather Information about them",
            "They might provide basic assistance if asked politely",
        ],
    ),
    ConnectionLevel.FRIEND: LevelDetail(
        label="Friend",
        description="You have a genuine friendship with this character.",
        mechanical_effects=[
            "Will provide reasonable assistance when asked",
            "Might offer information or aid without being asked",
            "Generally trustworthy and reliable",
        ],
    ),
    ConnectionLevel.BEST_FRIEND: LevelDetail(
        label="Best Friend",
        description="This character is one of your closest companions.",
        mechanical_effects=[
            "Will go out of their way to help you",
            "Shares important information freely",
            "Might take risks on your behalf",
            "Provides emotional support and counsel",
        ],
    ),
}


@dataclass(frozen=True)
class ConnectionRecord:
    pc_id: str
    npc_id: str
    level: ConnectionLevel = ConnectionLevel.STRANGER
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level.value, "updatedAt": self.updated_at}

    @classmethod
    def from_dict(
        cls, pc_id: str, npc_id: str, data: Dict[str, Any]
    ) -> "ConnectionRecord":
        return cls(
            pc_id=pc_id,
            npc_id=npc_id,
            level=ConnectionLevel.parse(data.get("level")),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass(frozen=True)
class InteractionEntry:
    """상호작용 기록 1건. 진행 제안 입력으로만 사용."""

    interaction_type: str
    description: str = ""
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interactionType": self.interaction_type,
            "description": self.description,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InteractionEntry":
        return cls(
            interaction_type=data.get("interactionType", ""),
            description=data.get("description", ""),
            timestamp=data.get("timestamp", ""),
        )
