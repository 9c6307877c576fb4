"""영속 문서 레이아웃 — 순수 dict 연산

{
  pcDispositions:  { pcId:  { npcId: { dispositionType, createdAt } } },
  npcDispositions: { npcId: { pcId:  { dispositionType, createdAt } } },
  connections:     { pcId:  { npcId: { level, updatedAt } } },
  npcRegistry:     { npcId: { displayName, firstSeen, lastSeen } },
  interactions:    { "pcId::npcId": [ { interactionType, description, timestamp } ] },
  metadata:        { version, lastUpdated }
}
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Set, Tuple, Union

from npc_vibes.core.connection.models import ConnectionLevel
from npc_vibes.core.disposition.models import DispositionType
from npc_vibes.core.errors import MalformedSnapshotError

SNAPSHOT_VERSION = "1.0"

PC_DISPOSITIONS = "pcDispositions"
NPC_DISPOSITIONS = "npcDispositions"
CONNECTIONS = "connections"
NPC_REGISTRY = "npcRegistry"
INTERACTIONS = "interactions"
METADATA = "metadata"

REQUIRED_KEYS = (PC_DISPOSITIONS, NPC_DISPOSITIONS, CONNECTIONS, NPC_REGISTRY)

PAIR_SEPARATOR = "::"

DISPOSITION_VALUES = frozenset(d.value for d in DispositionType)
LEVEL_VALUES = frozenset(level.value for level in ConnectionLevel)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def empty_snapshot() -> Dict[str, Any]:
    return {
        PC_DISPOSITIONS: {},
        NPC_DISPOSITIONS: {},
        CONNECTIONS: {},
        NPC_REGISTRY: {},
        INTERACTIONS: {},
        METADATA: {"version": SNAPSHOT_VERSION, "lastUpdated": ""},
    }


def interaction_key(pc_id: str, npc_id: str) -> str:
    return f"{pc_id}{PAIR_SEPARATOR}{npc_id}"


def split_interaction_key(key: str) -> Tuple[str, str]:
    parts = key.split(PAIR_SEPARATOR, 1)
    if len(parts) != 2:
        return key, ""
    return parts[0], parts[1]


def _check_nested(
    name: str, mapping: Dict[str, Any], field: str, allowed: FrozenSet[str]
) -> None:
    """{ outerId: { innerId: { field: 허용값, ... } } } 형태 확인"""
    for outer, inner in mapping.items():
        if not isinstance(inner, dict):
            raise MalformedSnapshotError(f"Invalid {name} entry for {outer!r}")
        for target, entry in inner.items():
            if not isinstance(entry, dict):
                raise MalformedSnapshotError(
                    f"Invalid {name} record {outer!r} -> {target!r}"
                )
            value = entry.get(field)
            if value not in allowed:
                raise MalformedSnapshotError(
                    f"Invalid {field} in {name} {outer!r} -> {target!r}: {value!r}"
                )


def _check_entries(data: Dict[str, Any], interactions: Dict[str, Any]) -> None:
    for key in (PC_DISPOSITIONS, NPC_DISPOSITIONS):
        _check_nested(key, data[key], "dispositionType", DISPOSITION_VALUES)
    _check_nested(CONNECTIONS, data[CONNECTIONS], "level", LEVEL_VALUES)

    for npc_id, entry in data[NPC_REGISTRY].items():
        if not isinstance(entry, dict):
            raise MalformedSnapshotError(f"Invalid {NPC_REGISTRY} entry for {npc_id!r}")

    for key, log in interactions.items():
        if not isinstance(log, list) or not all(isinstance(i, dict) for i in log):
            raise MalformedSnapshotError(f"Invalid {INTERACTIONS} log for {key!r}")


def parse_snapshot(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """가져오기 데이터 검증 + 정규화.

    4개 필수 최상위 키가 모두 객체로 있어야 하고,
    안쪽 기록도 형태와 enum 값(dispositionType, level)이 맞아야 한다.
    실패 시 MalformedSnapshotError. 입력은 변경하지 않는다.
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedSnapshotError(f"Invalid JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise MalformedSnapshotError("Snapshot must be a JSON object")

    missing = [key for key in REQUIRED_KEYS if key not in data]
    if missing:
        raise MalformedSnapshotError(
            f"Invalid data structure: missing {', '.join(missing)}"
        )

    for key in REQUIRED_KEYS:
        if not isinstance(data[key], dict):
            raise MalformedSnapshotError(
                f"Invalid data structure: {key} is not an object"
            )

    interactions = data.get(INTERACTIONS, {})
    if not isinstance(interactions, dict):
        raise MalformedSnapshotError(
            "Invalid data structure: interactions is not an object"
        )

    _check_entries(data, interactions)

    normalized = empty_snapshot()
    for key in REQUIRED_KEYS:
        normalized[key] = json.loads(json.dumps(data[key]))
    normalized[INTERACTIONS] = json.loads(json.dumps(interactions))
    if isinstance(data.get(METADATA), dict):
        normalized[METADATA].update(data[METADATA])
    return normalized


def _prune_nested(mapping: Dict[str, Dict[str, Any]], valid_ids: Set[str]) -> int:
    """바깥 키·안쪽 키 모두 valid_ids 기준으로 제거. 제거 건수 반환."""
    removed = 0
    for outer in list(mapping):
        if outer not in valid_ids:
            del mapping[outer]
            removed += 1
            continue
        inner = mapping[outer]
        for key in list(inner):
            if key not in valid_ids:
                del inner[key]
                removed += 1
    return removed


def prune_orphans(data: Dict[str, Any], valid_ids: Set[str]) -> int:
    """존재하지 않는 엔티티를 참조하는 항목 전체 제거 (제자리 변경)."""
    removed = 0

    registry = data[NPC_REGISTRY]
    for npc_id in list(registry):
        if npc_id not in valid_ids:
            del registry[npc_id]
            removed += 1

    removed += _prune_nested(data[PC_DISPOSITIONS], valid_ids)
    removed += _prune_nested(data[NPC_DISPOSITIONS], valid_ids)
    removed += _prune_nested(data[CONNECTIONS], valid_ids)

    interactions = data.setdefault(INTERACTIONS, {})
    for key in list(interactions):
        pc_id, npc_id = split_interaction_key(key)
        if pc_id not in valid_ids or npc_id not in valid_ids:
            del interactions[key]
            removed += 1

    return removed
