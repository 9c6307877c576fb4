"""Composition root — 오라클·생성기·저장소·코디네이터를 한 번만 만들어 주입"""

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from npc_vibes.config import Settings
from npc_vibes.core.disposition.roller import OutcomeGenerator
from npc_vibes.core.entities import ClientContext
from npc_vibes.core.event_bus import EventBus, VibeEvent
from npc_vibes.core.event_types import EventTypes
from npc_vibes.core.logging import get_logger
from npc_vibes.core.options import VibeOptions
from npc_vibes.core.visibility.oracle import VisibilityOracle
from npc_vibes.modules.base import HostContext
from npc_vibes.modules.module_manager import ModuleManager
from npc_vibes.modules.vibes.module import VibesModule
from npc_vibes.modules.visuals.module import VisualsModule
from npc_vibes.services.coordination_service import VibeCoordinator
from npc_vibes.services.messaging import Messenger, OutboxMessenger
from npc_vibes.services.presentation import AuraPresenter
from npc_vibes.services.relationship_store import RelationshipStore
from npc_vibes.services.scene_registry import SceneRegistry
from npc_vibes.services.settings_store import SettingsStore, SqlSettingsStore
from npc_vibes.services.transport import BroadcastHub, HubTransport

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class VibeRuntime:
    """프로세스 1개(클라이언트 1명)분의 조립 결과"""

    client: ClientContext
    options: VibeOptions
    event_bus: EventBus
    modules: ModuleManager
    registry: SceneRegistry
    store: RelationshipStore
    oracle: VisibilityOracle
    generator: OutcomeGenerator
    messenger: Messenger
    transport: HubTransport
    presenter: AuraPresenter
    coordinator: VibeCoordinator

    def context(self, scene_id: Optional[str] = None) -> HostContext:
        return HostContext(client=self.client, options=self.options, scene_id=scene_id)

    def command(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """UI 명령 1건 실행. 끝나면 이벤트 체인 초기화."""
        try:
            return func(*args, **kwargs)
        finally:
            self.event_bus.reset_chain()

    def shutdown(self) -> None:
        """남은 변경 저장 + 방송 수신 해제"""
        try:
            self.store.flush()
        finally:
            self.transport.close()


def build_runtime(
    settings: Settings,
    backend: Optional[SettingsStore] = None,
    db_session: Optional[Session] = None,
    hub: Optional[BroadcastHub] = None,
    client: Optional[ClientContext] = None,
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.monotonic,
    messenger: Optional[Messenger] = None,
) -> VibeRuntime:
    """설정으로부터 런타임 조립.

    backend를 주지 않으면 db_session 위의 SqlSettingsStore를 쓴다.
    같은 hub를 공유하는 런타임끼리 방송을 주고받는다.
    """
    if backend is None:
        if db_session is None:
            raise ValueError("build_runtime needs a settings backend or a db session")
        backend = SqlSettingsStore(db_session)

    client = client or settings.client_context()
    options = settings.vibe_options()
    modules = ModuleManager()
    event_bus = modules.event_bus
    hub = hub or BroadcastHub()

    registry = SceneRegistry()
    store = RelationshipStore(
        backend,
        client,
        debounce_seconds=settings.SAVE_DEBOUNCE_SECONDS,
        clock=clock,
    )
    oracle = VisibilityOracle(
        registry,
        options,
        client,
        cache_seconds=settings.SIGHT_CACHE_SECONDS,
        clock=clock,
    )
    generator = OutcomeGenerator(rng)
    messenger = messenger or OutboxMessenger()
    transport = HubTransport(hub, client.user_id)
    presenter = AuraPresenter(options, client)

    coordinator = VibeCoordinator(
        store=store,
        oracle=oracle,
        generator=generator,
        registry=registry,
        messenger=messenger,
        transport=transport,
        options=options,
        client=client,
        event_bus=event_bus,
    )
    store.set_error_callback(coordinator.report_store_error)

    runtime = VibeRuntime(
        client=client,
        options=options,
        event_bus=event_bus,
        modules=modules,
        registry=registry,
        store=store,
        oracle=oracle,
        generator=generator,
        messenger=messenger,
        transport=transport,
        presenter=presenter,
        coordinator=coordinator,
    )

    # 다른 클라이언트 방송 → broadcast_received 이벤트
    transport.listen(lambda message: _relay_broadcast(runtime, message))

    modules.register(VibesModule(coordinator, event_bus))
    modules.register(VisualsModule(coordinator, presenter, event_bus))
    modules.enable("vibes")
    modules.enable("visuals")

    logger.info(
        f"Runtime ready for {client.user_id} (gm={client.is_gm}, "
        f"modules={[m.name for m in modules.get_enabled_modules()]})"
    )
    return runtime


def _relay_broadcast(runtime: VibeRuntime, message: dict) -> None:
    runtime.modules.dispatch(
        VibeEvent(
            event_type=EventTypes.BROADCAST_RECEIVED,
            data={"message": message},
            source="transport",
            dedupe_key=str(message.get("type", "")),
        )
    )
