"""Vibe Coordinator — 시야 이벤트 1건당 오라클·굴림·저장·알림·방송 조율

Service → Core, Service → Service(협력자 인터페이스) 허용.
모듈 간 통보는 EventBus 경유.

첫 대면 흐름:
    호스트 이벤트 → 오라클(양방향) → [처음] 굴림 → 저장 → 알림 → 방송 → 오라

처리 완료 쌍 집합은 세션 메모리에만 있다.
프로세스 재시작 후에는 저장소의 기존 기록 확인이 중복 굴림을 막는다.

굴림은 접속 중인 GM 중 ID가 가장 작은 클라이언트 하나만 한다.
나머지 클라이언트는 dispositionRolled 방송을 받아 캐시를 맞춘다.
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Iterable, List, Optional, Set, Tuple, Union

from npc_vibes.core.connection.models import (
    LEVEL_DETAILS,
    ConnectionLevel,
    ConnectionRecord,
    InteractionEntry,
)
from npc_vibes.core.connection.progression import (
    connection_advice,
    is_valid_transition,
    suggest_next_level,
)
from npc_vibes.core.disposition.models import DispositionType, RollOutcome
from npc_vibes.core.disposition.roller import OutcomeGenerator, summarize_rolls
from npc_vibes.core.entities import ClientContext, EntityRole, TokenView
from npc_vibes.core.errors import (
    InvalidTransitionError,
    PrivilegeError,
    StoreWriteError,
)
from npc_vibes.core.event_bus import EventBus, VibeEvent
from npc_vibes.core.event_types import EventTypes
from npc_vibes.core.logging import get_logger
from npc_vibes.core.options import VibeOptions
from npc_vibes.core.snapshot import NPC_DISPOSITIONS, PC_DISPOSITIONS
from npc_vibes.core.visibility.oracle import VisibilityOracle
from npc_vibes.services import messaging
from npc_vibes.services import transport as broadcasts
from npc_vibes.services.messaging import Messenger
from npc_vibes.services.presentation import AuraPair, VisualPresenter
from npc_vibes.services.relationship_store import RelationshipStore
from npc_vibes.services.scene_registry import SceneRegistry
from npc_vibes.services.transport import Transport

logger = get_logger(__name__)

RECENT_CHECKS = 10
HISTORY_LIMIT = 500

PairKey = Tuple[str, str]


def pair_key(pc_id: str, npc_id: str) -> PairKey:
    return (pc_id, npc_id)


def pair_label(key: PairKey) -> str:
    """표시용 "pc-npc" 문자열. 키로 쓰지 말 것 (ID에 '-'가 들어갈 수 있음)."""
    return f"{key[0]}-{key[1]}"


def _dedupe(key: PairKey) -> str:
    return repr(key)


@dataclass(frozen=True)
class InteractionSummary:
    """상호작용 기록 후 진행 제안 결과 (적용되지 않음)"""

    pc_id: str
    npc_id: str
    interaction_count: int
    disposition: DispositionType
    current: ConnectionLevel
    suggested: ConnectionLevel

    @property
    def has_suggestion(self) -> bool:
        return self.suggested is not self.current

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pcId": self.pc_id,
            "npcId": self.npc_id,
            "interactionCount": self.interaction_count,
            "dispositionType": self.disposition.value,
            "current": self.current.value,
            "suggested": self.suggested.value,
        }


class VibeCoordinator:
    """첫 대면 disposition 생성 + Connection 명령 처리

    협력자는 모두 생성자 주입. presenter는 visuals 모듈이 붙였다 뗀다.
    """

    def __init__(
        self,
        store: RelationshipStore,
        oracle: VisibilityOracle,
        generator: OutcomeGenerator,
        registry: SceneRegistry,
        messenger: Messenger,
        transport: Transport,
        options: VibeOptions,
        client: ClientContext,
        event_bus: EventBus,
        presenter: Optional[VisualPresenter] = None,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._generator = generator
        self._registry = registry
        self._messenger = messenger
        self._transport = transport
        self._options = options
        self._client = client
        self._bus = event_bus
        self._presenter = presenter
        self._processed: Set[PairKey] = set()
        self._history: Deque[Dict[str, Any]] = deque(maxlen=HISTORY_LIMIT)

    # ── 협력자 접근 ──────────────────────────────────────────

    @property
    def store(self) -> RelationshipStore:
        return self._store

    @property
    def registry(self) -> SceneRegistry:
        return self._registry

    @property
    def presenter(self) -> Optional[VisualPresenter]:
        return self._presenter

    def attach_presenter(self, presenter: Optional[VisualPresenter]) -> None:
        self._presenter = presenter

    @property
    def processed_pairs(self) -> List[str]:
        return [pair_label(key) for key in sorted(self._processed)]

    def is_processed(self, pc_id: str, npc_id: str) -> bool:
        return pair_key(pc_id, npc_id) in self._processed

    @property
    def is_roller(self) -> bool:
        """첫 대면 굴림 담당인지. 접속 중인 GM(자신 포함) 중 ID가 가장 작은 쪽."""
        if not self._client.is_gm:
            return False
        candidates = set(self._registry.gm_user_ids())
        candidates.add(self._client.user_id)
        return min(candidates) == self._client.user_id

    def _require_gm(self, action: str) -> None:
        if not self._client.is_gm:
            raise PrivilegeError(f"Only GMs can {action}")

    # ── 토큰 생명주기 ────────────────────────────────────────

    def participates(self, token: Optional[TokenView]) -> bool:
        """관계 추적 대상 토큰인지 (액터 있음 + humanoid 정책)"""
        if token is None or not token.actor_id:
            return False
        if self._options.require_humanoid and not token.is_humanoid:
            return False
        return True

    def register_token(self, token: TokenView) -> bool:
        """토큰 등록. NPC면 레지스트리 갱신. 추적 대상이면 True."""
        self._registry.upsert_token(token)
        if not self.participates(token):
            logger.debug(f"Skipping token {token.name}: not tracked")
            return False
        if token.role is EntityRole.NPC:
            self._store.register_npc(token.actor_id, token.name)
        logger.info(f"Registered {token.role.value}: {token.name} ({token.token_id})")
        return True

    def on_token_removed(self, token_id: str) -> Optional[TokenView]:
        removed = self._registry.remove_token(token_id)
        dropped = self._oracle.invalidate_token(token_id)
        logger.debug(f"Token {token_id} removed ({dropped} sight memo(s) dropped)")
        return removed

    def on_token_changed(self, token: TokenView) -> List[RollOutcome]:
        """위치·숨김·시야 변경 후 재판정"""
        self._oracle.invalidate_token(token.token_id)
        return self.check_token(token)

    # ── 첫 대면 ──────────────────────────────────────────────

    def on_visibility_event(self, pc: TokenView, npc: TokenView) -> List[RollOutcome]:
        """PC·NPC 한 쌍 평가. 새로 굴린 결과 반환 (없으면 빈 리스트)."""
        if not self.participates(pc) or not self.participates(npc):
            logger.debug("Visibility event aborted: unresolved entity")
            return []
        pc_id, npc_id = pc.actor_id, npc.actor_id
        self._store.register_npc(npc_id, npc.name)

        pc_sees = self._oracle.can_see(pc, npc)
        npc_sees = self._oracle.can_see(npc, pc)
        if not pc_sees and not npc_sees:
            logger.debug(f"No line of sight between {pc.name} and {npc.name}")
            return []

        key = pair_key(pc_id, npc_id)
        if key in self._processed:
            logger.debug(f"Already processed pair: {pair_label(key)}")
            return []

        pc_exists = self._store.has_disposition(pc_id, npc_id, EntityRole.PC)
        npc_exists = self._store.has_disposition(npc_id, pc_id, EntityRole.NPC)
        if pc_exists and npc_exists:
            logger.debug(
                f"Both dispositions exist for {pair_label(key)}, visual update only"
            )
            self.request_visual(pc, npc)
            return []

        if not self.is_roller:
            # 굴림 담당 GM의 dispositionRolled 방송을 기다린다
            logger.debug(f"Awaiting GM roll for {pc.name} and {npc.name}")
            self.request_visual(pc, npc)
            return []

        logger.info(f"First sight: {pc.name} and {npc.name}")
        gm_ids = self._registry.gm_user_ids()
        self._notify(messaging.first_sight_message(pc.name, npc.name, gm_ids))

        outcomes: List[RollOutcome] = []
        if not pc_exists:
            outcome = self._roll_and_commit(pc, npc, gm_ids)
            if outcome is not None:
                outcomes.append(outcome)
        if not npc_exists:
            outcome = self._roll_and_commit(npc, pc, gm_ids)
            if outcome is not None:
                outcomes.append(outcome)

        self._processed.add(key)
        self._history.append(
            {
                "timestamp": time.time(),
                "pcName": pc.name,
                "npcName": npc.name,
                "pcId": pc_id,
                "npcId": npc_id,
                "pcCanSeeNpc": pc_sees,
                "npcCanSeePc": npc_sees,
                "outcomes": [o.to_dict() for o in outcomes],
            }
        )

        if outcomes:
            self._broadcast(broadcasts.disposition_rolled(pc_id, npc_id, outcomes))

        self.request_visual(pc, npc)
        return outcomes

    def _roll_and_commit(
        self, source: TokenView, target: TokenView, gm_ids: List[str]
    ) -> Optional[RollOutcome]:
        try:
            outcome = self._generator.roll(source, target)
        except Exception:
            logger.warning(
                f"Roll failed for {source.name} → {target.name}, skipped",
                exc_info=True,
            )
            return None

        self._store.set_disposition(
            outcome.source_id, outcome.target_id, outcome.disposition, source.role
        )
        logger.info(
            f"Rolled {outcome.roll}: {source.name} → {target.name} "
            f"= {outcome.disposition.value}"
        )
        if outcome.is_significant:
            self._notify(
                messaging.disposition_message(
                    outcome, source.name, target.name, gm_ids, first_sight=True
                )
            )
        self._emit(
            EventTypes.DISPOSITION_ROLLED,
            {"outcome": outcome},
            dedupe_key=_dedupe((outcome.source_id, outcome.target_id)),
        )
        return outcome

    def check_token(self, token: TokenView) -> List[RollOutcome]:
        """토큰 1개와 같은 씬 반대 역할 토큰 전부 평가"""
        current = self._registry.get_token(token.token_id) or token
        outcomes: List[RollOutcome] = []
        for other in self._registry.counterparts(current):
            if current.role is EntityRole.PC:
                outcomes.extend(self.on_visibility_event(current, other))
            else:
                outcomes.extend(self.on_visibility_event(other, current))
        return outcomes

    def refresh_all(self) -> List[RollOutcome]:
        """전체 재검사: 처리 완료 집합 + 시야 메모 초기화 후 모든 쌍 평가"""
        logger.info("Refreshing all line of sight checks")
        self._processed.clear()
        self._oracle.clear()
        outcomes: List[RollOutcome] = []
        for pc in self._registry.pcs():
            outcomes.extend(self.check_token(pc))
        logger.info(f"Sight refresh complete: {len(outcomes)} new roll(s)")
        return outcomes

    def clear_session(self) -> int:
        cleared = len(self._processed)
        self._processed.clear()
        logger.info(f"Cleared {cleared} processed pair(s)")
        return cleared

    # ── 시각 표시 ────────────────────────────────────────────

    def request_visual(self, pc: TokenView, npc: TokenView) -> bool:
        if self._presenter is None or not self._options.enable_visual_indicators:
            return False
        if not pc.actor_id or not npc.actor_id:
            return False
        record = self._store.get_disposition(pc.actor_id, npc.actor_id, EntityRole.PC)
        return self._presenter.update_pair(pc, npc, record) is not None

    def aura_pairs(self) -> List[AuraPair]:
        """씬별 PC·NPC 토큰 쌍과 PC 쪽 기록"""
        pairs: List[AuraPair] = []
        for pc in self._registry.pcs():
            if not pc.actor_id:
                continue
            for npc in self._registry.counterparts(pc):
                if not npc.actor_id:
                    continue
                record = self._store.get_disposition(
                    pc.actor_id, npc.actor_id, EntityRole.PC
                )
                if record is not None:
                    pairs.append((pc, npc, record))
        return pairs

    def refresh_visuals(self) -> int:
        if self._presenter is None:
            return 0
        return self._presenter.refresh_all(self.aura_pairs())

    # ── Connection ───────────────────────────────────────────

    def get_connection(self, pc_id: str, npc_id: str) -> ConnectionLevel:
        return self._store.get_connection(pc_id, npc_id)

    def set_connection_level(
        self,
        pc_id: str,
        npc_id: str,
        level: ConnectionLevel,
        actor_id: Optional[str] = None,
    ) -> ConnectionRecord:
        """단계 변경 (GM 전용). 2단계 이상 상승이면 InvalidTransitionError.

        actor_id: 변경한 사용자 ID (알림 수신 + 방송에 포함)
        """
        self._require_gm("change connection levels")
        current = self._store.get_connection(pc_id, npc_id)
        if not is_valid_transition(current, level):
            raise InvalidTransitionError(
                f"Cannot change connection from {current.value} to {level.value}"
            )

        record = self._store.set_connection(pc_id, npc_id, level)
        if level is not current:
            recipients = self._registry.gm_user_ids()
            if actor_id:
                recipients.append(actor_id)
            self._notify(
                messaging.connection_update_message(
                    self._registry.display_name(pc_id),
                    self._registry.display_name(npc_id),
                    current,
                    level,
                    recipients,
                )
            )

        self._flush_for_peers()
        self._broadcast(broadcasts.connection_changed(pc_id, npc_id, level, actor_id))
        self._emit(
            EventTypes.CONNECTION_CHANGED,
            {"pc_id": pc_id, "npc_id": npc_id, "previous": current, "level": level},
            dedupe_key=_dedupe(pair_key(pc_id, npc_id)),
        )
        return record

    def record_interaction(
        self,
        pc_id: str,
        npc_id: str,
        interaction_type: str,
        description: str = "",
    ) -> InteractionSummary:
        """상호작용 기록 + 진행 제안 계산 (GM 전용). 제안은 자동 적용하지 않는다."""
        self._require_gm("record interactions")
        count = self._store.append_interaction(
            pc_id, npc_id, InteractionEntry(interaction_type, description)
        )
        record = self._store.get_disposition(pc_id, npc_id, EntityRole.PC)
        disposition = record.disposition if record else DispositionType.NONE
        current = self._store.get_connection(pc_id, npc_id)
        suggested = suggest_next_level(disposition, count, current)
        summary = InteractionSummary(
            pc_id=pc_id,
            npc_id=npc_id,
            interaction_count=count,
            disposition=disposition,
            current=current,
            suggested=suggested,
        )

        if summary.has_suggestion:
            logger.info(
                f"Connection suggestion: {pc_id} → {npc_id} "
                f"{current.value} → {suggested.value} ({count} interactions)"
            )
            self._notify(
                messaging.suggestion_message(
                    self._registry.display_name(pc_id),
                    self._registry.display_name(npc_id),
                    current,
                    suggested,
                    count,
                    self._registry.gm_user_ids(),
                )
            )
            self._emit(
                EventTypes.CONNECTION_SUGGESTED,
                {"summary": summary},
                dedupe_key=_dedupe(pair_key(pc_id, npc_id)),
            )
        return summary

    def connection_details(self, pc_id: str, npc_id: str) -> Dict[str, Any]:
        level = self._store.get_connection(pc_id, npc_id)
        record = self._store.get_disposition(pc_id, npc_id, EntityRole.PC)
        disposition = record.disposition if record else DispositionType.NONE
        detail = LEVEL_DETAILS[level]
        return {
            "pcId": pc_id,
            "npcId": npc_id,
            "level": level.value,
            "label": detail.label,
            "description": detail.description,
            "mechanicalEffects": list(detail.mechanical_effects),
            "advice": connection_advice(disposition, level),
            "interactions": [
                e.to_dict() for e in self._store.get_interactions(pc_id, npc_id)
            ],
        }

    # ── 일괄 명령 ────────────────────────────────────────────

    def export_snapshot(self) -> Dict[str, Any]:
        return self._store.export_all()

    def import_snapshot(self, raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
        """검증 실패 시 MalformedSnapshotError, 상태 불변"""
        snapshot = self._store.import_all(raw)
        self._data_changed("import")
        return snapshot

    def reset_all(self) -> None:
        """GM 전용. 아니면 PrivilegeError, 효과 없음."""
        self._store.reset_all()
        self._processed.clear()
        if self._presenter is not None:
            self._presenter.clear()
        self._data_changed("reset")

    def cleanup_orphans(self, valid_ids: Optional[Iterable[str]] = None) -> int:
        """valid_ids 생략 시 레지스트리가 아는 액터 기준"""
        ids = set(valid_ids) if valid_ids is not None else self._registry.valid_actor_ids()
        removed = self._store.cleanup_orphans(ids)
        if removed:
            self._data_changed("cleanup")
        return removed

    def _data_changed(self, reason: str) -> None:
        """visuals 모듈이 DISPOSITION_CHANGED를 받아 오라를 다시 그린다"""
        if self._client.is_gm:
            self._flush_for_peers()
            self._broadcast(broadcasts.disposition_changed())
        self._emit(EventTypes.DISPOSITION_CHANGED, {"reason": reason}, dedupe_key=reason)

    # ── 방송 수신 ────────────────────────────────────────────

    def handle_broadcast(self, message: Dict[str, Any]) -> bool:
        """다른 클라이언트가 보낸 메시지 반영. 처리했으면 True."""
        kind = message.get("type")
        if kind == broadcasts.DISPOSITION_ROLLED:
            self._adopt_rolled(message)
        elif kind == broadcasts.DISPOSITION_CHANGED:
            self._store.reload()
            self._emit(
                EventTypes.DISPOSITION_CHANGED, {"reason": "remote"}, dedupe_key="remote"
            )
        elif kind == broadcasts.CONNECTION_CHANGED:
            self._store.reload()
            logger.info(
                f"Connection updated remotely: {message.get('pcId')} → "
                f"{message.get('npcId')} = {message.get('level')}"
            )
        else:
            logger.debug(f"Ignoring broadcast type: {kind}")
            return False
        return True

    def _adopt_rolled(self, message: Dict[str, Any]) -> None:
        """굴림 담당 GM의 결과가 기준. 로컬에 다른 기록이 있어도 덮어쓴다."""
        pc_id = message.get("pcId")
        npc_id = message.get("npcId")
        if not pc_id or not npc_id:
            logger.debug("dispositionRolled without ids ignored")
            return
        if self.is_roller:
            logger.debug(f"Ignoring dispositionRolled for {pc_id}/{npc_id}: local roller")
            return
        for data in message.get("outcomes", []):
            outcome = RollOutcome.from_dict(data)
            self._store.adopt_disposition(
                outcome.source_id,
                outcome.target_id,
                outcome.disposition,
                outcome.source_role,
            )
        self._processed.add(pair_key(pc_id, npc_id))
        for pc in self._registry.find_by_actor(pc_id):
            for npc in self._registry.find_by_actor(npc_id, pc.scene_id):
                self.request_visual(pc, npc)

    def _flush_for_peers(self) -> None:
        """방송 받은 쪽이 다시 읽기 전에 대기 중인 변경을 먼저 저장"""
        try:
            self._store.flush()
        except StoreWriteError as e:
            self.report_store_error(e)

    # ── 알림 / 방송 ──────────────────────────────────────────

    def _notify(self, message: messaging.ChatMessage) -> None:
        if not self._options.enable_notifications:
            return
        self._messenger.send(message)

    def report_store_error(self, error: Exception) -> None:
        """영속화 실패를 GM에게 알림 (알림 옵션과 무관)"""
        logger.error(f"Vibe data persistence failed: {error}")
        if not self._client.is_gm:
            return
        recipients = self._registry.gm_user_ids() or [self._client.user_id]
        self._messenger.send(
            messaging.error_message(str(error), "saving vibe data", recipients)
        )

    def _broadcast(self, message: Dict[str, Any]) -> None:
        try:
            self._transport.broadcast(message)
        except Exception as e:
            logger.error(f"Broadcast failed ({message.get('type')}): {e}")
            if self._client.is_gm:
                recipients = self._registry.gm_user_ids() or [self._client.user_id]
                self._messenger.send(
                    messaging.error_message(str(e), "broadcasting update", recipients)
                )

    def _emit(self, event_type: str, data: Dict[str, Any], dedupe_key: str = "") -> None:
        self._bus.emit(
            VibeEvent(
                event_type=event_type,
                data=data,
                source="vibe_coordinator",
                dedupe_key=dedupe_key,
            )
        )

    # ── 조회 ─────────────────────────────────────────────────

    def vibe_book(self, pc_id: Optional[str] = None) -> Dict[str, Any]:
        """none이 아닌 disposition 목록.

        pc_id가 없으면 GM 보기 (양방향 전체), 있으면 해당 PC 시점만.
        """
        pc_entries: List[Dict[str, Any]] = []
        npc_entries: List[Dict[str, Any]] = []
        pc_ids = [pc_id] if pc_id else list(self._store.data[PC_DISPOSITIONS])

        for source_id in pc_ids:
            for npc_id, record in self._store.pc_dispositions(source_id).items():
                if not record.disposition.is_significant:
                    continue
                level = self._store.get_connection(source_id, npc_id)
                pc_entries.append(
                    {
                        "pcId": source_id,
                        "pcName": self._registry.display_name(source_id),
                        "npcId": npc_id,
                        "npcName": self._registry.display_name(npc_id),
                        "dispositionType": record.disposition.value,
                        "connection": level.value,
                        "advice": connection_advice(record.disposition, level),
                        "createdAt": record.created_at,
                    }
                )

        if pc_id is None:
            for npc_id in list(self._store.data[NPC_DISPOSITIONS]):
                for target_id, record in self._store.npc_dispositions(npc_id).items():
                    if not record.disposition.is_significant:
                        continue
                    npc_entries.append(
                        {
                            "npcId": npc_id,
                            "npcName": self._registry.display_name(npc_id),
                            "pcId": target_id,
                            "pcName": self._registry.display_name(target_id),
                            "dispositionType": record.disposition.value,
                            "createdAt": record.created_at,
                        }
                    )

        return {
            "pcVibes": pc_entries,
            "npcVibes": npc_entries,
            "hasVibes": bool(pc_entries or npc_entries),
        }

    def debug_info(self) -> Dict[str, Any]:
        rolls = [
            outcome["roll"] for check in self._history for outcome in check["outcomes"]
        ]
        stats = summarize_rolls(rolls)
        stats["totalVibes"] = stats["total"] - stats[DispositionType.NONE.value]
        info: Dict[str, Any] = {
            "totalChecks": len(self._history),
            "processedPairs": self.processed_pairs,
            "recentChecks": list(self._history)[-RECENT_CHECKS:],
            "stats": stats,
            "sightCacheSize": self._oracle.cache_size,
            "pendingWrites": self._store.has_pending_writes,
            "options": self._options.to_dict(),
        }
        if self._presenter is not None and hasattr(self._presenter, "debug_info"):
            info["visuals"] = self._presenter.debug_info()
        return info

    def clear_debug(self) -> None:
        self._history.clear()
