"""모듈 관리자 - 등록, 활성화/비활성화, 의존성 검증, 호스트 이벤트 전파"""

from typing import Dict, List, Optional

from npc_vibes.core.event_bus import EventBus, VibeEvent
from npc_vibes.core.logging import get_logger
from npc_vibes.modules.base import Action, HostContext, HostModule

logger = get_logger(__name__)


class ModuleManager:
    """모듈 토글 및 생명주기 관리"""

    def __init__(self, event_bus: Optional[EventBus] = None) -> None:
        self._modules: Dict[str, HostModule] = {}
        self._event_bus: EventBus = event_bus or EventBus()

    @property
    def event_bus(self) -> EventBus:
        """모듈이 이벤트 구독/발행에 사용할 EventBus"""
        return self._event_bus

    @property
    def modules(self) -> Dict[str, HostModule]:
        """등록된 모든 모듈 (읽기 전용 접근)"""
        return dict(self._modules)

    def get(self, name: str) -> Optional[HostModule]:
        return self._modules.get(name)

    def get_enabled_modules(self) -> List[HostModule]:
        """활성화된 모듈만 반환 (등록 순서)"""
        return [m for m in self._modules.values() if m.enabled]

    def register(self, module: HostModule) -> None:
        """모듈 등록. 같은 이름 중복 등록 시 경고 후 덮어쓰기."""
        if module.name in self._modules:
            logger.warning(f"모듈 덮어쓰기: {module.name}")
        self._modules[module.name] = module
        logger.info(f"모듈 등록: {module.name}")

    def enable(self, name: str) -> bool:
        """모듈 활성화. 의존성 미충족 시 False 반환.

        1. 모듈 존재 확인
        2. 의존성 모듈이 모두 등록 + 활성화 상태인지 확인
        3. on_enable() 호출
        4. enabled = True
        """
        module = self._modules.get(name)
        if not module:
            logger.error(f"모듈 미등록: {name}")
            return False

        if module.enabled:
            logger.debug(f"이미 활성화됨: {name}")
            return True

        for dep in module.dependencies:
            dep_module = self._modules.get(dep)
            if not dep_module:
                logger.warning(f"의존성 미등록: {name} requires {dep}")
                return False
            if not dep_module.enabled:
                logger.warning(f"의존성 비활성: {name} requires {dep} (not enabled)")
                return False

        module.on_enable()
        module.enabled = True
        logger.info(f"모듈 활성화: {name}")
        return True

    def disable(self, name: str) -> bool:
        """모듈 비활성화. 이 모듈에 의존하는 모듈을 먼저 비활성화 (cascade).

        Returns:
            True if 비활성화 성공, False if 모듈 미등록
        """
        module = self._modules.get(name)
        if not module:
            logger.error(f"모듈 미등록: {name}")
            return False

        if not module.enabled:
            logger.debug(f"이미 비활성: {name}")
            return True

        for other in self._modules.values():
            if name in other.dependencies and other.enabled:
                logger.info(f"cascade 비활성화: {other.name} (depends on {name})")
                self.disable(other.name)

        module.on_disable()
        module.enabled = False
        logger.info(f"모듈 비활성화: {name}")
        return True

    def dispatch(self, event: VibeEvent) -> None:
        """호스트 이벤트 1건 전파 + 처리 종료 시 이벤트 체인 초기화"""
        try:
            self._event_bus.emit(event)
        finally:
            self._event_bus.reset_chain()

    def process_scene_ready(self, scene_id: str, context: HostContext) -> None:
        """활성 모듈의 on_scene_ready 순차 호출"""
        try:
            for module in self._modules.values():
                if module.enabled:
                    module.on_scene_ready(scene_id, context)
        finally:
            self._event_bus.reset_chain()

    def get_all_actions(self, context: HostContext) -> List[Action]:
        """모든 활성 모듈에서 가능한 명령 수집"""
        actions: List[Action] = []
        for module in self._modules.values():
            if module.enabled:
                actions.extend(module.get_available_actions(context))
        return actions

    def is_enabled(self, name: str) -> bool:
        """특정 모듈이 활성화 상태인지 확인"""
        module = self._modules.get(name)
        return module.enabled if module else False
