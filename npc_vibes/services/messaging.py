"""Messaging — 귓속말 알림 전달

메시지 본문은 평문. 표시 형식(HTML)은 호스트 쪽 책임.
수신자 목록이 비어 있으면 전달하지 않는다.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from npc_vibes.core.connection.models import ConnectionLevel
from npc_vibes.core.disposition.models import RollOutcome
from npc_vibes.core.disposition.roller import disposition_color
from npc_vibes.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChatMessage:
    """수신자 지정 알림 1건"""

    kind: str  # first_sight, disposition, connection, suggestion, error
    title: str
    body: str
    recipients: tuple
    color: str = "#4a90e2"
    roll: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "body": self.body,
            "whisper": list(self.recipients),
            "color": self.color,
            "roll": self.roll,
            "data": dict(self.data),
        }


class Messenger(ABC):
    """호스트 채팅 알림 싱크"""

    @abstractmethod
    def send(self, message: ChatMessage) -> None:
        ...


class OutboxMessenger(Messenger):
    """보낸 메시지를 보관하는 기본 구현.

    호스트 어댑터가 outbox를 읽어 채팅으로 옮긴다.
    """

    def __init__(self) -> None:
        self.sent: List[ChatMessage] = []

    def send(self, message: ChatMessage) -> None:
        if not message.recipients:
            logger.debug(f"Message skipped (no recipients): {message.title}")
            return
        self.sent.append(message)
        logger.info(
            f"Whisper [{message.kind}] to {len(message.recipients)} user(s): "
            f"{message.title}"
        )

    def drain(self) -> List[ChatMessage]:
        messages, self.sent = self.sent, []
        return messages


def first_sight_message(
    pc_name: str, npc_name: str, recipients: Sequence[str]
) -> ChatMessage:
    return ChatMessage(
        kind="first_sight",
        title="First Sight",
        body=(
            f"{pc_name} and {npc_name} see each other for the first time. "
            "Rolling for vibes..."
        ),
        recipients=tuple(recipients),
    )


def disposition_message(
    outcome: RollOutcome,
    source_name: str,
    target_name: str,
    recipients: Sequence[str],
    first_sight: bool = False,
) -> ChatMessage:
    label = outcome.disposition.label
    lines = []
    if first_sight:
        lines.append(f"First sight between {source_name} and {target_name}")
    lines.append(f"{source_name} feels {label.lower()} towards {target_name}")
    lines.append(outcome.description)
    return ChatMessage(
        kind="disposition",
        title=f"{label} Vibe",
        body="\n".join(lines),
        recipients=tuple(recipients),
        color=disposition_color(outcome.disposition),
        roll=outcome.roll,
        data=outcome.to_dict(),
    )


def connection_update_message(
    pc_name: str,
    npc_name: str,
    old_level: ConnectionLevel,
    new_level: ConnectionLevel,
    recipients: Sequence[str],
) -> ChatMessage:
    # 수신자 중복 제거, 순서 유지
    unique = tuple(dict.fromkeys(recipients))
    return ChatMessage(
        kind="connection",
        title="Connection Updated",
        body=(
            f"Connection between {pc_name} and {npc_name} changed from "
            f"{old_level.value} to {new_level.value}"
        ),
        recipients=unique,
        color="#9b59b6",
    )


def suggestion_message(
    pc_name: str,
    npc_name: str,
    current: ConnectionLevel,
    suggested: ConnectionLevel,
    interaction_count: int,
    recipients: Sequence[str],
) -> ChatMessage:
    return ChatMessage(
        kind="suggestion",
        title="Connection Progression",
        body=(
            f"{pc_name} and {npc_name} have interacted {interaction_count} times. "
            f"Consider advancing their connection from {current.value} "
            f"to {suggested.value}."
        ),
        recipients=tuple(recipients),
        color="#9b59b6",
    )


def error_message(error: str, context: str, recipients: Sequence[str]) -> ChatMessage:
    return ChatMessage(
        kind="error",
        title="NPC Vibes Error",
        body=f"Context: {context}\nError: {error}",
        recipients=tuple(recipients),
        color="#e74c3c",
    )
