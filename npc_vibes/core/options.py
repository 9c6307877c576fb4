"""월드 옵션 — 런타임 변경 가능

오라클·프레젠터·코디네이터가 같은 인스턴스를 공유하므로
필드를 바꾸면 다음 호출부터 바로 반영된다.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class VibeOptions:
    enable_visual_indicators: bool = True
    enable_notifications: bool = True
    default_sight_range: float = 300.0
    ignore_walls: bool = False
    npc_vision_exempt: bool = True
    require_humanoid: bool = False
    aura_opacity: int = 70  # 0 ~ 100
    aura_size: float = 1.5

    def update(self, **changes: Any) -> Dict[str, Any]:
        """알려진 필드만 갱신. 실제 변경된 항목 반환."""
        applied: Dict[str, Any] = {}
        for key, value in changes.items():
            if value is None or not hasattr(self, key):
                continue
            if getattr(self, key) != value:
                setattr(self, key, value)
                applied[key] = value
        return applied

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
