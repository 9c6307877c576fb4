"""API request/response schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from npc_vibes.core.connection.models import ConnectionLevel
from npc_vibes.core.entities import EntityRole, TokenView, UserInfo, WallSegment
from npc_vibes.core.geometry import Point


# === Host adapter ===


class TokenPayload(BaseModel):
    """호스트 토큰 스냅샷"""

    token_id: str = Field(..., min_length=1)
    actor_id: Optional[str] = Field(None, description="안정 액터 ID")
    actor_type: Optional[str] = Field(None, description="character / npc / 기타")
    name: str = ""
    scene_id: Optional[str] = None
    x: float = 0.0
    y: float = 0.0
    width: float = Field(1.0, gt=0)
    height: float = Field(1.0, gt=0)
    hidden: bool = False
    vision_enabled: bool = True
    sight_range: Optional[float] = Field(None, ge=0)
    darkvision: Optional[float] = Field(None, ge=0)
    low_light_vision: Optional[float] = Field(None, ge=0)
    owner_ids: List[str] = Field(default_factory=list)
    traits: List[str] = Field(default_factory=list)

    def to_view(self) -> Optional[TokenView]:
        """PC/NPC가 아닌 액터 유형이면 None"""
        role = EntityRole.from_actor_type(self.actor_type)
        if role is None:
            return None
        return TokenView(
            token_id=self.token_id,
            actor_id=self.actor_id,
            name=self.name,
            role=role,
            scene_id=self.scene_id,
            x=self.x,
            y=self.y,
            width=self.width,
            height=self.height,
            hidden=self.hidden,
            vision_enabled=self.vision_enabled,
            sight_range=self.sight_range,
            darkvision=self.darkvision,
            low_light_vision=self.low_light_vision,
            owner_ids=tuple(self.owner_ids),
            traits=tuple(self.traits),
        )


class TokenPatch(BaseModel):
    """토큰 변경분. 보낸 필드만 반영."""

    name: Optional[str] = None
    scene_id: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)
    hidden: Optional[bool] = None
    vision_enabled: Optional[bool] = None
    sight_range: Optional[float] = Field(None, ge=0)
    darkvision: Optional[float] = Field(None, ge=0)
    low_light_vision: Optional[float] = Field(None, ge=0)
    owner_ids: Optional[List[str]] = None
    traits: Optional[List[str]] = None

    def changes(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        for key in ("owner_ids", "traits"):
            if data.get(key) is not None:
                data[key] = tuple(data[key])
        return data


class WallPayload(BaseModel):
    ax: float
    ay: float
    bx: float
    by: float
    blocks_sight: bool = True

    def to_segment(self) -> WallSegment:
        return WallSegment(
            start=Point(self.ax, self.ay),
            end=Point(self.bx, self.by),
            blocks_sight=self.blocks_sight,
        )


class WallsRequest(BaseModel):
    walls: List[WallPayload] = Field(default_factory=list)


class ActorsRequest(BaseModel):
    """월드 액터 목록 (ID → 이름)"""

    actors: Dict[str, str] = Field(default_factory=dict)


class UserPayload(BaseModel):
    user_id: str = Field(..., min_length=1)
    name: str = ""
    is_gm: bool = False
    active: bool = True

    def to_info(self) -> UserInfo:
        return UserInfo(
            user_id=self.user_id, name=self.name, is_gm=self.is_gm, active=self.active
        )


class UsersRequest(BaseModel):
    users: List[UserPayload] = Field(default_factory=list)


# === UI commands ===


class ConnectionRequest(BaseModel):
    """Connection 단계 변경 요청"""

    pc_id: str = Field(..., min_length=1)
    npc_id: str = Field(..., min_length=1)
    level: ConnectionLevel
    actor_id: Optional[str] = Field(None, description="변경한 사용자 ID")


class InteractionRequest(BaseModel):
    pc_id: str = Field(..., min_length=1)
    npc_id: str = Field(..., min_length=1)
    interaction_type: str = Field(..., min_length=1)
    description: str = ""


class CleanupRequest(BaseModel):
    valid_ids: Optional[List[str]] = Field(
        None, description="생략 시 레지스트리가 아는 액터 기준"
    )


class OptionsPatch(BaseModel):
    enable_visual_indicators: Optional[bool] = None
    enable_notifications: Optional[bool] = None
    default_sight_range: Optional[float] = Field(None, ge=0)
    ignore_walls: Optional[bool] = None
    npc_vision_exempt: Optional[bool] = None
    require_humanoid: Optional[bool] = None
    aura_opacity: Optional[int] = Field(None, ge=0, le=100)
    aura_size: Optional[float] = Field(None, gt=0)


# === Response Schemas ===


class TokenEventResponse(BaseModel):
    """토큰 이벤트 처리 결과"""

    tracked: bool
    outcomes: List[Dict[str, Any]] = Field(default_factory=list)


class RecheckResponse(BaseModel):
    outcomes: List[Dict[str, Any]] = Field(default_factory=list)
    processed_pairs: List[str] = Field(default_factory=list)


class ConnectionResponse(BaseModel):
    pc_id: str
    npc_id: str
    level: ConnectionLevel
    updated_at: str = ""


class CountResponse(BaseModel):
    count: int


class OptionsResponse(BaseModel):
    changed: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)

