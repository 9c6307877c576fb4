"""호스트 엔티티 좁은 인터페이스

호스트의 토큰/액터 객체를 직접 다루지 않는다.
어댑터가 TokenView 스냅샷을 만들어 코어에 넘긴다.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from npc_vibes.core.geometry import Point

HUMANOID_TRAIT = "humanoid"


class EntityRole(str, Enum):
    """엔티티 역할 (PC / NPC)"""

    PC = "pc"
    NPC = "npc"

    @classmethod
    def from_actor_type(cls, actor_type: Optional[str]) -> Optional["EntityRole"]:
        """호스트 액터 유형 → 역할. 대상 외 유형은 None."""
        if actor_type == "character":
            return cls.PC
        if actor_type == "npc":
            return cls.NPC
        return None

    @property
    def opposite(self) -> "EntityRole":
        return EntityRole.NPC if self is EntityRole.PC else EntityRole.PC


@dataclass(frozen=True)
class TokenView:
    """씬 위 토큰 1개의 읽기 전용 스냅샷.

    actor_id는 토큰이 삭제·재생성되어도 유지되는 안정 식별자.
    좌표와 시야 반경은 같은 거리 단위를 쓴다.
    """

    token_id: str
    actor_id: Optional[str]
    name: str
    role: EntityRole
    scene_id: Optional[str]
    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0
    hidden: bool = False
    vision_enabled: bool = True
    sight_range: Optional[float] = None  # 토큰별 명시 오버라이드
    darkvision: Optional[float] = None
    low_light_vision: Optional[float] = None
    owner_ids: Tuple[str, ...] = ()
    traits: Tuple[str, ...] = ()

    @property
    def position(self) -> Point:
        return Point(self.x, self.y)

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_humanoid(self) -> bool:
        return HUMANOID_TRAIT in self.traits


@dataclass(frozen=True)
class ClientContext:
    """현재 프로세스(클라이언트)의 사용자 정보"""

    user_id: str
    is_gm: bool = False


@dataclass(frozen=True)
class UserInfo:
    """호스트 사용자 (알림 수신자 결정용)"""

    user_id: str
    name: str = ""
    is_gm: bool = False
    active: bool = True


@dataclass
class WallSegment:
    """씬 장애물 선분 (어댑터용 시야 판정)"""

    start: Point
    end: Point
    blocks_sight: bool = True
    tags: Tuple[str, ...] = field(default_factory=tuple)
