"""Presentation — PC별 오라 표시 상태

PC가 NPC에게 가진 disposition을 NPC 토큰 주변 색 오라로 나타낸다.
오라는 해당 PC 소유자와 GM에게만 보인다.
실제 렌더링은 호스트 몫이고, 여기서는 무엇을 어디에 그릴지만 계산한다.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from npc_vibes.core.disposition.models import DispositionRecord, DispositionType
from npc_vibes.core.disposition.roller import disposition_color
from npc_vibes.core.entities import ClientContext, TokenView
from npc_vibes.core.logging import get_logger
from npc_vibes.core.options import VibeOptions

logger = get_logger(__name__)

AuraPair = Tuple[TokenView, TokenView, Optional[DispositionRecord]]


@dataclass(frozen=True)
class AuraSpec:
    npc_token_id: str
    pc_token_id: str
    pc_id: str
    disposition: DispositionType
    color: str
    visible_to: Tuple[str, ...]
    left: float
    top: float
    size: float
    opacity: float  # 0.0 ~ 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "npcTokenId": self.npc_token_id,
            "pcTokenId": self.pc_token_id,
            "pcId": self.pc_id,
            "dispositionType": self.disposition.value,
            "color": self.color,
            "visibleTo": list(self.visible_to),
            "left": self.left,
            "top": self.top,
            "size": self.size,
            "opacity": self.opacity,
        }


class VisualPresenter(ABC):
    """시각 표시 요청 인터페이스"""

    @abstractmethod
    def update_pair(
        self, pc: TokenView, npc: TokenView, record: Optional[DispositionRecord]
    ) -> Optional[AuraSpec]:
        ...

    @abstractmethod
    def remove_token(self, token_id: str) -> int:
        ...

    @abstractmethod
    def refresh_all(self, pairs: Iterable[AuraPair]) -> int:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class AuraPresenter(VisualPresenter):
    def __init__(self, options: VibeOptions, client: ClientContext) -> None:
        self._options = options
        self._client = client
        # (npc 토큰 ID, PC 액터 ID) → 오라
        self._auras: Dict[Tuple[str, str], AuraSpec] = {}

    def _geometry(self, npc: TokenView) -> Tuple[float, float, float]:
        size = max(npc.width, npc.height) * self._options.aura_size
        center = npc.center
        return center.x - size / 2, center.y - size / 2, size

    def _visible_here(self, visible_to: Tuple[str, ...]) -> bool:
        return self._client.is_gm or self._client.user_id in visible_to

    def update_pair(
        self, pc: TokenView, npc: TokenView, record: Optional[DispositionRecord]
    ) -> Optional[AuraSpec]:
        """PC→NPC 기록으로 오라 생성/교체. 표시 대상이 아니면 None."""
        if not self._options.enable_visual_indicators:
            return None
        if record is None or not record.disposition.is_significant:
            return None
        if not self._visible_here(pc.owner_ids):
            return None

        left, top, size = self._geometry(npc)
        spec = AuraSpec(
            npc_token_id=npc.token_id,
            pc_token_id=pc.token_id,
            pc_id=record.source_id,
            disposition=record.disposition,
            color=disposition_color(record.disposition),
            visible_to=pc.owner_ids,
            left=left,
            top=top,
            size=size,
            opacity=self._options.aura_opacity / 100,
        )
        self._auras[(npc.token_id, record.source_id)] = spec
        logger.info(f"Aura set: {record.disposition.value} on {npc.name}")
        return spec

    def reposition(self, npc: TokenView) -> int:
        """토큰 이동/크기 변경 반영. 갱신된 오라 수 반환."""
        updated = 0
        for key, spec in list(self._auras.items()):
            if spec.npc_token_id != npc.token_id:
                continue
            left, top, size = self._geometry(npc)
            self._auras[key] = AuraSpec(
                npc_token_id=spec.npc_token_id,
                pc_token_id=spec.pc_token_id,
                pc_id=spec.pc_id,
                disposition=spec.disposition,
                color=spec.color,
                visible_to=spec.visible_to,
                left=left,
                top=top,
                size=size,
                opacity=self._options.aura_opacity / 100,
            )
            updated += 1
        return updated

    def remove_token(self, token_id: str) -> int:
        """해당 토큰(NPC 쪽 또는 PC 쪽)에 걸린 오라 제거"""
        stale = [
            key
            for key, spec in self._auras.items()
            if token_id in (spec.npc_token_id, spec.pc_token_id)
        ]
        for key in stale:
            del self._auras[key]
        if stale:
            logger.debug(f"Removed {len(stale)} aura(s) for token {token_id}")
        return len(stale)

    def refresh_all(self, pairs: Iterable[AuraPair]) -> int:
        """전체 재구성. 생성된 오라 수 반환."""
        self.clear()
        if not self._options.enable_visual_indicators:
            return 0
        created = 0
        for pc, npc, record in pairs:
            if self.update_pair(pc, npc, record) is not None:
                created += 1
        logger.info(f"Auras refreshed: {created}")
        return created

    def clear(self) -> None:
        self._auras.clear()

    def should_show(self, token_id: str) -> bool:
        return any(
            spec.npc_token_id == token_id and self._visible_here(spec.visible_to)
            for spec in self._auras.values()
        )

    def auras_for(self, token_id: str) -> List[AuraSpec]:
        return [s for s in self._auras.values() if s.npc_token_id == token_id]

    @property
    def auras(self) -> List[AuraSpec]:
        return list(self._auras.values())

    def debug_info(self) -> Dict[str, Any]:
        return {
            "activeAuras": len(self._auras),
            "settings": {
                "enableVisualIndicators": self._options.enable_visual_indicators,
                "auraOpacity": self._options.aura_opacity,
                "auraSize": self._options.aura_size,
            },
        }
