"""VisualsModule — 오라 표시 모듈

활성화되면 코디네이터에 AuraPresenter를 붙이고,
비활성화되면 떼어내고 모든 오라를 지운다.
EventBus 구독: token_updated, token_deleted, disposition_changed.
"""

from __future__ import annotations

from typing import List

from npc_vibes.core.event_bus import EventBus, VibeEvent
from npc_vibes.core.event_types import EventTypes
from npc_vibes.core.logging import get_logger
from npc_vibes.modules.base import Action, HostContext, HostModule
from npc_vibes.services.coordination_service import VibeCoordinator
from npc_vibes.services.presentation import AuraPresenter

logger = get_logger(__name__)

GEOMETRY_FIELDS = frozenset({"x", "y", "width", "height"})


class VisualsModule(HostModule):
    """PC별 disposition 오라

    의존성: ["vibes"]
    """

    def __init__(
        self,
        coordinator: VibeCoordinator,
        presenter: AuraPresenter,
        event_bus: EventBus,
    ) -> None:
        super().__init__()
        self._coordinator = coordinator
        self._presenter = presenter
        self._bus = event_bus

    @property
    def name(self) -> str:
        return "visuals"

    @property
    def dependencies(self) -> List[str]:
        return ["vibes"]

    @property
    def presenter(self) -> AuraPresenter:
        return self._presenter

    def on_enable(self) -> None:
        self._coordinator.attach_presenter(self._presenter)
        self._bus.subscribe(EventTypes.TOKEN_UPDATED, self._handle_token_updated)
        self._bus.subscribe(EventTypes.TOKEN_DELETED, self._handle_token_deleted)
        self._bus.subscribe(
            EventTypes.DISPOSITION_CHANGED, self._handle_disposition_changed
        )
        logger.info("visuals 모듈 활성화")

    def on_disable(self) -> None:
        self._bus.unsubscribe(EventTypes.TOKEN_UPDATED, self._handle_token_updated)
        self._bus.unsubscribe(EventTypes.TOKEN_DELETED, self._handle_token_deleted)
        self._bus.unsubscribe(
            EventTypes.DISPOSITION_CHANGED, self._handle_disposition_changed
        )
        self._coordinator.attach_presenter(None)
        self._presenter.clear()
        logger.info("visuals 모듈 비활성화")

    def on_scene_ready(self, scene_id: str, context: HostContext) -> None:
        self._coordinator.refresh_visuals()

    def get_available_actions(self, context: HostContext) -> List[Action]:
        if not context.options.enable_visual_indicators:
            return []
        return [
            Action(
                name="refresh_visuals",
                display_name="Refresh Auras",
                module_name=self.name,
            )
        ]

    # ── EventBus 핸들러 ────────────────────────────────────────

    def _handle_token_updated(self, event: VibeEvent) -> None:
        changes = set(event.data.get("changes", ()))
        if changes & GEOMETRY_FIELDS:
            self._presenter.reposition(event.data["token"])

    def _handle_token_deleted(self, event: VibeEvent) -> None:
        self._presenter.remove_token(event.data["token_id"])

    def _handle_disposition_changed(self, event: VibeEvent) -> None:
        created = self._coordinator.refresh_visuals()
        logger.debug(
            f"visuals: redrawn after {event.data.get('reason')} ({created} aura(s))"
        )
