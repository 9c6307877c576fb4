"""모듈 기반 인터페이스"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from npc_vibes.core.entities import ClientContext
from npc_vibes.core.options import VibeOptions


@dataclass
class HostContext:
    """모듈에 전달되는 호스트 상태 컨텍스트"""

    client: ClientContext
    options: VibeOptions
    scene_id: Optional[str] = None

    # 모듈이 추가 데이터를 넣을 수 있는 확장 슬롯
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Action:
    """모듈이 UI에 제공하는 명령"""

    name: str  # 명령 식별자 (예: "recheck", "export")
    display_name: str  # 표시 이름 (예: "Recheck All Sight")
    module_name: str  # 제공한 모듈 이름
    description: str = ""
    gm_only: bool = False
    params: Dict[str, Any] = field(default_factory=dict)


class HostModule(ABC):
    """모든 Vibes 모듈의 기반 인터페이스

    규칙:
    - 모듈은 다른 모듈을 직접 import하지 않는다
    - 모듈 간 통신은 EventBus를 경유한다
    - Module → Core, Module → Service는 허용
    """

    _enabled: bool

    def __init__(self) -> None:
        self._enabled = False

    @property
    @abstractmethod
    def name(self) -> str:
        """모듈 고유 이름 (예: 'vibes', 'visuals')"""
        ...

    @property
    def dependencies(self) -> List[str]:
        """이 모듈이 의존하는 다른 모듈 이름 목록

        기본값은 빈 리스트 (의존성 없음).
        """
        return []

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    @abstractmethod
    def on_enable(self) -> None:
        """모듈 활성화 시 초기화 작업 (EventBus 구독 등)"""
        ...

    @abstractmethod
    def on_disable(self) -> None:
        """모듈 비활성화 시 정리 작업"""
        ...

    @abstractmethod
    def on_scene_ready(self, scene_id: str, context: HostContext) -> None:
        """씬 캔버스 준비 완료 시 호출."""
        ...

    @abstractmethod
    def get_available_actions(self, context: HostContext) -> List[Action]:
        """현재 클라이언트에 이 모듈이 제공하는 명령 목록."""
        ...
