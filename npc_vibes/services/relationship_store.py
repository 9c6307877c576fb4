"""Relationship Store — 관계 상태 캐시 + 지연 영속화

Service → Core, Service → DB 허용.
메모리 캐시가 flush 사이의 기준 데이터이며,
변경은 WriteBuffer로 병합되어 한 번에 저장된다.
가져오기/초기화는 debounce 없이 즉시 저장한다.

공유 문서는 GM만 쓴다 (world 범위 설정).
플레이어 클라이언트의 저장소는 캐시 전용 사본이며 저장을 예약하지 않는다.
"""

import copy
import json
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from npc_vibes.core.connection.models import (
    ConnectionLevel,
    ConnectionRecord,
    InteractionEntry,
)
from npc_vibes.core.disposition.models import DispositionRecord, DispositionType
from npc_vibes.core.entities import ClientContext, EntityRole
from npc_vibes.core.errors import PrivilegeError, StoreWriteError
from npc_vibes.core.logging import get_logger
from npc_vibes.core.snapshot import (
    CONNECTIONS,
    INTERACTIONS,
    METADATA,
    NPC_DISPOSITIONS,
    NPC_REGISTRY,
    PC_DISPOSITIONS,
    empty_snapshot,
    interaction_key,
    parse_snapshot,
    prune_orphans,
    utc_now,
)
from npc_vibes.core.write_buffer import SAVE_DEBOUNCE_SECONDS, WriteBuffer
from npc_vibes.services.settings_store import SettingsStore

logger = get_logger(__name__)

SETTINGS_NAMESPACE = "npc-vibes"
SETTINGS_KEY = "vibeData"

ErrorCallback = Callable[[StoreWriteError], None]


class RelationshipStore:
    """disposition / connection / interaction / NPC registry CRUD"""

    def __init__(
        self,
        backend: SettingsStore,
        client: ClientContext,
        debounce_seconds: float = SAVE_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._backend = backend
        self._client = client
        self._buffer = WriteBuffer(debounce_seconds, clock)
        self._on_error = on_error
        self._data: Optional[Dict[str, Any]] = None

    def set_error_callback(self, callback: Optional[ErrorCallback]) -> None:
        self._on_error = callback

    # ── 캐시 ─────────────────────────────────────────────────

    @property
    def data(self) -> Dict[str, Any]:
        """캐시된 문서. 최초 접근 시 저장소에서 로드."""
        if self._data is None:
            stored = self._backend.get(SETTINGS_NAMESPACE, SETTINGS_KEY)
            self._data = self._normalize(stored)
        return self._data

    @staticmethod
    def _normalize(stored: Any) -> Dict[str, Any]:
        data = empty_snapshot()
        if isinstance(stored, dict):
            for key, value in stored.items():
                if key in data and isinstance(value, dict):
                    data[key] = value
        return data

    def reload(self) -> None:
        """공유 문서 다시 읽기. 미저장 변경은 버린다 (공유 문서 우선)."""
        if self._buffer.pending:
            logger.warning(
                f"Discarding {self._buffer.coalesced} unsaved change(s) on reload"
            )
            self._buffer.cancel()
        refresh = getattr(self._backend, "refresh", None)
        if callable(refresh):
            refresh()
        self._data = None
        logger.debug("Relationship cache invalidated")

    @property
    def has_pending_writes(self) -> bool:
        return self._buffer.pending

    # ── Disposition ──────────────────────────────────────────

    @staticmethod
    def _disposition_map_key(role: EntityRole) -> str:
        return PC_DISPOSITIONS if role is EntityRole.PC else NPC_DISPOSITIONS

    def get_disposition(
        self, source_id: str, target_id: str, role: EntityRole
    ) -> Optional[DispositionRecord]:
        mapping = self.data[self._disposition_map_key(role)]
        entry = mapping.get(source_id, {}).get(target_id)
        if entry is None:
            return None
        return DispositionRecord.from_dict(source_id, target_id, role, entry)

    def has_disposition(self, source_id: str, target_id: str, role: EntityRole) -> bool:
        return self.get_disposition(source_id, target_id, role) is not None

    def set_disposition(
        self,
        source_id: str,
        target_id: str,
        disposition: DispositionType,
        role: EntityRole,
    ) -> DispositionRecord:
        """upsert. 멱등성은 호출자(코디네이터) 책임."""
        record = DispositionRecord(
            source_id=source_id,
            target_id=target_id,
            role=role,
            disposition=disposition,
            created_at=utc_now(),
        )
        mapping = self.data[self._disposition_map_key(role)]
        mapping.setdefault(source_id, {})[target_id] = record.to_dict()
        self._mark_dirty()
        logger.info(
            f"Disposition stored: {role.value}:{source_id} → {target_id} "
            f"= {disposition.value}"
        )
        return record

    def adopt_disposition(
        self,
        source_id: str,
        target_id: str,
        disposition: DispositionType,
        role: EntityRole,
    ) -> bool:
        """굴림 담당 GM이 방송한 결과를 캐시에만 반영. 저장 예약 없음.

        방송 쪽이 기준이므로 값이 다르면 덮어쓴다. 바뀌었으면 True.
        """
        mapping = self.data[self._disposition_map_key(role)]
        inner = mapping.setdefault(source_id, {})
        current = inner.get(target_id)
        if current is not None and current.get("dispositionType") == disposition.value:
            return False
        inner[target_id] = {"dispositionType": disposition.value, "createdAt": utc_now()}
        return True

    def pc_dispositions(self, pc_id: str) -> Dict[str, DispositionRecord]:
        entries = self.data[PC_DISPOSITIONS].get(pc_id, {})
        return {
            npc_id: DispositionRecord.from_dict(pc_id, npc_id, EntityRole.PC, entry)
            for npc_id, entry in entries.items()
        }

    def npc_dispositions(self, npc_id: str) -> Dict[str, DispositionRecord]:
        entries = self.data[NPC_DISPOSITIONS].get(npc_id, {})
        return {
            pc_id: DispositionRecord.from_dict(npc_id, pc_id, EntityRole.NPC, entry)
            for pc_id, entry in entries.items()
        }

    def all_dispositions(self) -> List[DispositionRecord]:
        records: List[DispositionRecord] = []
        for pc_id in self.data[PC_DISPOSITIONS]:
            records.extend(self.pc_dispositions(pc_id).values())
        for npc_id in self.data[NPC_DISPOSITIONS]:
            records.extend(self.npc_dispositions(npc_id).values())
        return records

    # ── Connection ───────────────────────────────────────────

    def get_connection_record(self, pc_id: str, npc_id: str) -> Optional[ConnectionRecord]:
        entry = self.data[CONNECTIONS].get(pc_id, {}).get(npc_id)
        if entry is None:
            return None
        return ConnectionRecord.from_dict(pc_id, npc_id, entry)

    def get_connection(self, pc_id: str, npc_id: str) -> ConnectionLevel:
        """기록 없으면 Stranger"""
        record = self.get_connection_record(pc_id, npc_id)
        return record.level if record else ConnectionLevel.STRANGER

    def set_connection(
        self, pc_id: str, npc_id: str, level: ConnectionLevel
    ) -> ConnectionRecord:
        """무조건 upsert. 전이 검증은 호출자 책임."""
        record = ConnectionRecord(
            pc_id=pc_id, npc_id=npc_id, level=level, updated_at=utc_now()
        )
        self.data[CONNECTIONS].setdefault(pc_id, {})[npc_id] = record.to_dict()
        self._mark_dirty()
        logger.info(f"Connection stored: {pc_id} → {npc_id} = {level.value}")
        return record

    def pc_connections(self, pc_id: str) -> Dict[str, ConnectionRecord]:
        entries = self.data[CONNECTIONS].get(pc_id, {})
        return {
            npc_id: ConnectionRecord.from_dict(pc_id, npc_id, entry)
            for npc_id, entry in entries.items()
        }

    # ── Interaction ──────────────────────────────────────────

    def append_interaction(
        self, pc_id: str, npc_id: str, entry: InteractionEntry
    ) -> int:
        """기록 추가. 추가 후 해당 쌍의 기록 수 반환."""
        if not entry.timestamp:
            entry = InteractionEntry(entry.interaction_type, entry.description, utc_now())
        log = self.data[INTERACTIONS].setdefault(interaction_key(pc_id, npc_id), [])
        log.append(entry.to_dict())
        self._mark_dirty()
        return len(log)

    def get_interactions(self, pc_id: str, npc_id: str) -> List[InteractionEntry]:
        log = self.data[INTERACTIONS].get(interaction_key(pc_id, npc_id), [])
        return [InteractionEntry.from_dict(item) for item in log]

    # ── NPC registry ─────────────────────────────────────────

    def register_npc(self, npc_id: str, display_name: str) -> Dict[str, Any]:
        """NPC 관측 기록. 처음이면 생성, 아니면 lastSeen 갱신."""
        registry = self.data[NPC_REGISTRY]
        now = utc_now()
        entry = registry.get(npc_id)
        if entry is None:
            entry = {"displayName": display_name, "firstSeen": now, "lastSeen": now}
            registry[npc_id] = entry
            logger.info(f"NPC registered: {display_name} ({npc_id})")
        else:
            entry["lastSeen"] = now
            entry["displayName"] = display_name or entry.get("displayName", "")
        self._mark_dirty()
        return dict(entry)

    def npc_registry(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self.data[NPC_REGISTRY])

    # ── 일괄 작업 ────────────────────────────────────────────

    def export_all(self) -> Dict[str, Any]:
        """전체 스냅샷 (깊은 복사)"""
        snapshot = copy.deepcopy(self.data)
        snapshot[METADATA] = {**snapshot.get(METADATA, {}), "lastUpdated": utc_now()}
        return snapshot

    def export_json(self) -> str:
        return json.dumps(self.export_all(), indent=2)

    def import_all(self, raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
        """검증 후 캐시 통째 교체 + 즉시 저장 (GM 전용). 검증 실패 시 상태 불변."""
        if not self._client.is_gm:
            raise PrivilegeError("Only GMs can import vibe data")
        snapshot = parse_snapshot(raw)
        self._replace(snapshot)
        logger.info("Relationship data imported")
        return snapshot

    def reset_all(self) -> None:
        """전체 관계 상태 초기화 (GM 전용)"""
        if not self._client.is_gm:
            raise PrivilegeError("Only GMs can reset vibe data")
        logger.info("Resetting all vibe data")
        self._replace(empty_snapshot())

    def cleanup_orphans(self, valid_ids: Iterable[str]) -> int:
        """유효 ID 집합에 없는 엔티티 참조 항목 제거. 제거 건수 반환."""
        removed = prune_orphans(self.data, set(valid_ids))
        if removed:
            self._mark_dirty()
            logger.info(f"Cleaned up {removed} orphaned entries")
        return removed

    def _replace(self, snapshot: Dict[str, Any]) -> None:
        self._data = snapshot
        self._buffer.cancel()
        self._persist()

    # ── 영속화 ───────────────────────────────────────────────

    def _mark_dirty(self) -> None:
        if not self._client.is_gm:
            # 플레이어 쪽 변경은 캐시에만 남고 다음 reload 때 사라진다
            return
        self._buffer.schedule()

    def _persist(self) -> None:
        data = self.data
        data[METADATA] = {**data.get(METADATA, {}), "lastUpdated": utc_now()}
        self._backend.set(SETTINGS_NAMESPACE, SETTINGS_KEY, data)

    def flush(self) -> None:
        """대기 중인 변경 즉시 저장. 실패 시 StoreWriteError (캐시 유지)."""
        if not self._buffer.pending:
            return
        coalesced = self._buffer.coalesced
        try:
            self._persist()
        finally:
            # 실패해도 예약은 해제: 다음 변경이 전체 스냅샷을 다시 저장
            self._buffer.mark_flushed()
        logger.debug(f"Vibe data saved ({coalesced} changes coalesced)")

    def pump(self) -> bool:
        """조용한 구간이 지났으면 저장. 저장했으면 True.

        실패는 로그 + on_error 콜백으로 보고하고 예외를 올리지 않는다.
        """
        if not self._buffer.due():
            return False
        try:
            self.flush()
        except StoreWriteError as e:
            logger.error(f"Failed to save vibe data: {e}")
            if self._on_error is not None:
                self._on_error(e)
            return False
        return True
