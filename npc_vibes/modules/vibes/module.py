"""VibesModule — HostModule 인터페이스 구현

VibeCoordinator를 래핑하여 ModuleManager 생명주기에 통합.
EventBus 구독: token_created, token_updated, token_deleted,
sight_refresh, broadcast_received.
"""

from __future__ import annotations

from typing import List

from npc_vibes.core.event_bus import EventBus, VibeEvent
from npc_vibes.core.event_types import EventTypes
from npc_vibes.core.logging import get_logger
from npc_vibes.modules.base import Action, HostContext, HostModule
from npc_vibes.services.coordination_service import VibeCoordinator

logger = get_logger(__name__)

# 이 필드가 바뀌면 시야 재판정
RECHECK_FIELDS = frozenset(
    {
        "x",
        "y",
        "hidden",
        "scene_id",
        "vision_enabled",
        "sight_range",
        "darkvision",
        "low_light_vision",
    }
)


class VibesModule(HostModule):
    """첫 대면 disposition 모듈

    담당:
    - 호스트 토큰 생명주기 → 코디네이터 호출
    - 씬 준비 시 전체 토큰 등록 + 재검사
    - 다른 클라이언트 방송 반영

    의존성: 없음
    """

    def __init__(self, coordinator: VibeCoordinator, event_bus: EventBus) -> None:
        super().__init__()
        self._coordinator = coordinator
        self._bus = event_bus

    @property
    def name(self) -> str:
        return "vibes"

    def on_enable(self) -> None:
        self._bus.subscribe(EventTypes.TOKEN_CREATED, self._handle_token_created)
        self._bus.subscribe(EventTypes.TOKEN_UPDATED, self._handle_token_updated)
        self._bus.subscribe(EventTypes.TOKEN_DELETED, self._handle_token_deleted)
        self._bus.subscribe(EventTypes.SIGHT_REFRESH, self._handle_sight_refresh)
        self._bus.subscribe(EventTypes.BROADCAST_RECEIVED, self._handle_broadcast)
        logger.info("vibes 모듈 활성화")

    def on_disable(self) -> None:
        self._bus.unsubscribe(EventTypes.TOKEN_CREATED, self._handle_token_created)
        self._bus.unsubscribe(EventTypes.TOKEN_UPDATED, self._handle_token_updated)
        self._bus.unsubscribe(EventTypes.TOKEN_DELETED, self._handle_token_deleted)
        self._bus.unsubscribe(EventTypes.SIGHT_REFRESH, self._handle_sight_refresh)
        self._bus.unsubscribe(EventTypes.BROADCAST_RECEIVED, self._handle_broadcast)
        self._coordinator.clear_session()
        logger.info("vibes 모듈 비활성화")

    def on_scene_ready(self, scene_id: str, context: HostContext) -> None:
        """씬 토큰 전부 등록 후 전체 재검사"""
        registry = self._coordinator.registry
        registry.mark_ready(scene_id)
        tokens = registry.tokens(scene_id)
        logger.info(f"vibes: scene {scene_id} ready ({len(tokens)} tokens)")
        for token in tokens:
            self._coordinator.register_token(token)
        self._coordinator.refresh_all()

    def get_available_actions(self, context: HostContext) -> List[Action]:
        actions = [
            Action(
                name="recheck",
                display_name="Recheck All Sight",
                module_name=self.name,
                description="Clear processed pairs and re-evaluate every PC/NPC pair",
            ),
            Action(name="vibe_book", display_name="Vibe Book", module_name=self.name),
            Action(name="export", display_name="Export Vibes", module_name=self.name),
            Action(
                name="clear_session",
                display_name="Clear Session",
                module_name=self.name,
            ),
        ]
        if context.client.is_gm:
            actions.extend(
                [
                    Action(
                        name="import",
                        display_name="Import Vibes",
                        module_name=self.name,
                        gm_only=True,
                    ),
                    Action(
                        name="reset",
                        display_name="Reset All Vibes",
                        module_name=self.name,
                        gm_only=True,
                    ),
                    Action(
                        name="cleanup",
                        display_name="Clean Up Orphans",
                        module_name=self.name,
                        gm_only=True,
                    ),
                ]
            )
        return actions

    # ── EventBus 핸들러 ────────────────────────────────────────

    def _handle_token_created(self, event: VibeEvent) -> None:
        token = event.data["token"]
        if self._coordinator.register_token(token):
            self._coordinator.check_token(token)

    def _handle_token_updated(self, event: VibeEvent) -> None:
        token = event.data["token"]
        changes = set(event.data.get("changes", ()))
        if not changes & RECHECK_FIELDS:
            logger.debug(f"vibes: {token.name} update ignored ({sorted(changes)})")
            return
        if self._coordinator.register_token(token):
            self._coordinator.on_token_changed(token)

    def _handle_token_deleted(self, event: VibeEvent) -> None:
        self._coordinator.on_token_removed(event.data["token_id"])

    def _handle_sight_refresh(self, event: VibeEvent) -> None:
        self._coordinator.refresh_all()

    def _handle_broadcast(self, event: VibeEvent) -> None:
        self._coordinator.handle_broadcast(event.data["message"])
