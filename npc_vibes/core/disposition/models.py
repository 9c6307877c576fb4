"""Disposition(바이브) 도메인 모델

DB 무관 순수 데이터 클래스.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from npc_vibes.core.entities import EntityRole


class DispositionType(str, Enum):
    """첫 대면 시 한 엔티티가 상대에게 갖는 감정 반응 4종"""

    NONE = "none"
    REPULSED = "repulsed"
    CURIOUS = "curious"
    AWESTRUCK = "awestruck"

    @property
    def is_significant(self) -> bool:
        """알림·오라 대상 여부"""
        return self is not DispositionType.NONE

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class DispositionRecord:
    """방향성 disposition 기록. 한 번 생성되면 자동 경로에서 덮어쓰지 않는다."""

    source_id: str
    target_id: str
    role: EntityRole  # source 쪽 역할
    disposition: DispositionType
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dispositionType": self.disposition.value,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(
        cls, source_id: str, target_id: str, role: EntityRole, data: Dict[str, Any]
    ) -> "DispositionRecord":
        return cls(
            source_id=source_id,
            target_id=target_id,
            role=role,
            disposition=DispositionType(data.get("dispositionType", "none")),
            created_at=data.get("createdAt", ""),
        )


@dataclass(frozen=True)
class RollOutcome:
    """Outcome Generator 결과 1방향분"""

    source_id: str
    target_id: str
    source_role: EntityRole
    disposition: DispositionType
    roll: int
    description: str

    @property
    def is_significant(self) -> bool:
        return self.disposition.is_significant

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "sourceRole": self.source_role.value,
            "dispositionType": self.disposition.value,
            "roll": self.roll,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RollOutcome":
        return cls(
            source_id=data["sourceId"],
            target_id=data["targetId"],
            source_role=EntityRole(data["sourceRole"]),
            disposition=DispositionType(data["dispositionType"]),
            roll=int(data.get("roll", 0)),
            description=data.get("description", ""),
        )
