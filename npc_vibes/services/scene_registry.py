"""Scene Registry — 호스트 씬 상태 미러

호스트 어댑터가 보낸 토큰·벽·사용자·액터 정보를 보관한다.
- LineOfSight 구현: 시야선이 sight를 막는 벽 선분과 교차하면 막힘
- 표시 이름 조회, GM 사용자 조회, 유효 액터 ID 집합 제공
"""

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from npc_vibes.core.entities import EntityRole, TokenView, UserInfo, WallSegment
from npc_vibes.core.geometry import Point, segments_intersect
from npc_vibes.core.logging import get_logger
from npc_vibes.core.visibility.oracle import LineOfSight

logger = get_logger(__name__)


class SceneRegistry(LineOfSight):
    def __init__(self) -> None:
        self._tokens: Dict[str, TokenView] = {}
        self._walls: Dict[str, List[WallSegment]] = {}
        self._users: Dict[str, UserInfo] = {}
        # 월드 액터 ID → 이름. None이면 아직 동기화 전.
        self._actors: Optional[Dict[str, str]] = None
        self._ready_scenes: Set[str] = set()

    # ── 토큰 ─────────────────────────────────────────────────

    def upsert_token(self, token: TokenView) -> TokenView:
        self._tokens[token.token_id] = token
        return token

    def update_token(
        self, token_id: str, changes: Dict[str, Any]
    ) -> Optional[Tuple[TokenView, TokenView]]:
        """알려진 필드만 반영. (이전, 이후) 반환. 토큰이 없으면 None."""
        current = self._tokens.get(token_id)
        if current is None:
            return None
        known = {
            key: value
            for key, value in changes.items()
            if key in TokenView.__dataclass_fields__ and key != "token_id"
        }
        updated = replace(current, **known)
        self._tokens[token_id] = updated
        return current, updated

    def remove_token(self, token_id: str) -> Optional[TokenView]:
        return self._tokens.pop(token_id, None)

    def get_token(self, token_id: str) -> Optional[TokenView]:
        return self._tokens.get(token_id)

    def tokens(self, scene_id: Optional[str] = None) -> List[TokenView]:
        return [
            t for t in self._tokens.values() if scene_id is None or t.scene_id == scene_id
        ]

    def by_role(self, role: EntityRole, scene_id: Optional[str] = None) -> List[TokenView]:
        return [t for t in self.tokens(scene_id) if t.role is role]

    def pcs(self, scene_id: Optional[str] = None) -> List[TokenView]:
        return self.by_role(EntityRole.PC, scene_id)

    def npcs(self, scene_id: Optional[str] = None) -> List[TokenView]:
        return self.by_role(EntityRole.NPC, scene_id)

    def counterparts(self, token: TokenView) -> List[TokenView]:
        """같은 씬의 반대 역할 토큰"""
        return self.by_role(token.role.opposite, token.scene_id)

    def find_by_actor(
        self, actor_id: str, scene_id: Optional[str] = None
    ) -> List[TokenView]:
        return [t for t in self.tokens(scene_id) if t.actor_id == actor_id]

    # ── 씬 ───────────────────────────────────────────────────

    def set_walls(self, scene_id: str, walls: Iterable[WallSegment]) -> int:
        self._walls[scene_id] = list(walls)
        logger.debug(f"Scene {scene_id}: {len(self._walls[scene_id])} wall(s)")
        return len(self._walls[scene_id])

    def walls(self, scene_id: str) -> List[WallSegment]:
        return list(self._walls.get(scene_id, []))

    def mark_ready(self, scene_id: str) -> None:
        self._ready_scenes.add(scene_id)

    def is_ready(self, scene_id: str) -> bool:
        return scene_id in self._ready_scenes

    def is_clear(self, scene_id: str, origin: Point, destination: Point) -> bool:
        for wall in self._walls.get(scene_id, []):
            if not wall.blocks_sight:
                continue
            if segments_intersect(origin, destination, wall.start, wall.end):
                return False
        return True

    # ── 사용자 / 액터 ────────────────────────────────────────

    def set_users(self, users: Iterable[UserInfo]) -> None:
        self._users = {u.user_id: u for u in users}

    @property
    def users(self) -> List[UserInfo]:
        return list(self._users.values())

    def gm_user_ids(self) -> List[str]:
        """접속 중인 GM"""
        return [u.user_id for u in self._users.values() if u.is_gm and u.active]

    def set_actors(self, actors: Dict[str, str]) -> None:
        self._actors = dict(actors)

    def display_name(self, actor_id: str) -> str:
        if self._actors and actor_id in self._actors:
            return self._actors[actor_id]
        for token in self._tokens.values():
            if token.actor_id == actor_id:
                return token.name
        return actor_id

    def valid_actor_ids(self) -> Set[str]:
        """현재 존재하는 액터 ID. 월드 목록이 없으면 씬 토큰 기준."""
        ids = {t.actor_id for t in self._tokens.values() if t.actor_id}
        if self._actors is not None:
            ids |= set(self._actors)
        return ids

    def clear(self) -> None:
        self._tokens.clear()
        self._walls.clear()
        self._ready_scenes.clear()
