"""Transport — 동시 접속 클라이언트 간 브로드캐스트

메시지 형태:
- {"type": "dispositionRolled", "pcId", "npcId", "outcomes"}
- {"type": "dispositionChanged"}
- {"type": "connectionChanged", "pcId", "npcId", "level", "actorId"}

보낸 클라이언트 자신에게는 되돌아오지 않는다.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from npc_vibes.core.connection.models import ConnectionLevel
from npc_vibes.core.disposition.models import RollOutcome
from npc_vibes.core.logging import get_logger

logger = get_logger(__name__)

DISPOSITION_ROLLED = "dispositionRolled"
DISPOSITION_CHANGED = "dispositionChanged"
CONNECTION_CHANGED = "connectionChanged"

MESSAGE_TYPES = (DISPOSITION_ROLLED, DISPOSITION_CHANGED, CONNECTION_CHANGED)

BroadcastListener = Callable[[Dict[str, Any]], None]


class Transport(ABC):
    """브로드캐스트 송신 인터페이스"""

    @abstractmethod
    def broadcast(self, message: Dict[str, Any]) -> None:
        ...


class BroadcastHub:
    """프로세스 내 브로드캐스트 허브.

    클라이언트 ID별 수신자를 등록하고, 발신자를 제외한 모두에게 전달한다.
    WebSocket 연결도 같은 허브에 수신자로 등록된다.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, BroadcastListener] = {}

    def subscribe(self, client_id: str, listener: BroadcastListener) -> None:
        if client_id in self._listeners:
            logger.warning(f"Broadcast listener replaced: {client_id}")
        self._listeners[client_id] = listener
        logger.debug(f"Broadcast listener added: {client_id}")

    def unsubscribe(self, client_id: str) -> None:
        if self._listeners.pop(client_id, None) is not None:
            logger.debug(f"Broadcast listener removed: {client_id}")

    @property
    def client_ids(self) -> List[str]:
        return list(self._listeners)

    def publish(self, origin_id: str, message: Dict[str, Any]) -> int:
        """origin을 제외한 수신자에게 전달. 전달 수 반환."""
        delivered = 0
        for client_id, listener in list(self._listeners.items()):
            if client_id == origin_id:
                continue
            try:
                listener(message)
                delivered += 1
            except Exception:
                logger.exception(
                    f"Broadcast delivery failed: {client_id} "
                    f"(type={message.get('type')})"
                )
        logger.info(
            f"Broadcast {message.get('type')} from {origin_id} "
            f"→ {delivered} client(s)"
        )
        return delivered


class HubTransport(Transport):
    """BroadcastHub에 발신자 ID를 붙여 보내는 Transport"""

    def __init__(self, hub: BroadcastHub, client_id: str) -> None:
        self._hub = hub
        self._client_id = client_id

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def hub(self) -> BroadcastHub:
        return self._hub

    def broadcast(self, message: Dict[str, Any]) -> None:
        self._hub.publish(self._client_id, message)

    def listen(self, listener: BroadcastListener) -> None:
        self._hub.subscribe(self._client_id, listener)

    def close(self) -> None:
        self._hub.unsubscribe(self._client_id)


def disposition_rolled(
    pc_id: str, npc_id: str, outcomes: List[RollOutcome]
) -> Dict[str, Any]:
    return {
        "type": DISPOSITION_ROLLED,
        "pcId": pc_id,
        "npcId": npc_id,
        "outcomes": [outcome.to_dict() for outcome in outcomes],
    }


def disposition_changed() -> Dict[str, Any]:
    return {"type": DISPOSITION_CHANGED}


def connection_changed(
    pc_id: str, npc_id: str, level: ConnectionLevel, actor_id: Optional[str]
) -> Dict[str, Any]:
    return {
        "type": CONNECTION_CHANGED,
        "pcId": pc_id,
        "npcId": npc_id,
        "level": level.value,
        "actorId": actor_id,
    }
