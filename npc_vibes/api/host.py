"""Host adapter endpoints.

호스트 쪽 shim이 토큰/씬 생명주기를 보내면
SceneRegistry를 갱신하고 EventBus 이벤트로 번역한다.
WebSocket은 클라이언트 간 방송 중계용.
"""

import asyncio
import uuid
from typing import Any, Callable, Dict, List

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from npc_vibes.api.schemas import (
    ActorsRequest,
    CountResponse,
    RecheckResponse,
    TokenEventResponse,
    TokenPatch,
    TokenPayload,
    UsersRequest,
    WallsRequest,
)
from npc_vibes.core.event_bus import VibeEvent
from npc_vibes.core.event_types import EventTypes
from npc_vibes.core.logging import get_logger
from npc_vibes.runtime import VibeRuntime
from npc_vibes.services.transport import MESSAGE_TYPES

logger = get_logger(__name__)

router = APIRouter(prefix="/host", tags=["host"])

SOURCE = "host"


def get_runtime(request: Request) -> VibeRuntime:
    """VibeRuntime 인스턴스 반환 (의존성 주입)"""
    runtime: VibeRuntime = request.app.state.runtime
    return runtime


def _collect_rolled(
    runtime: VibeRuntime, action: Callable[[], None]
) -> List[Dict[str, Any]]:
    """action 실행 중 새로 굴린 결과 수집"""
    rolled: List[Dict[str, Any]] = []

    def collect(e: VibeEvent) -> None:
        rolled.append(e.data["outcome"].to_dict())

    runtime.event_bus.subscribe(EventTypes.DISPOSITION_ROLLED, collect)
    try:
        action()
    finally:
        runtime.event_bus.unsubscribe(EventTypes.DISPOSITION_ROLLED, collect)
    return rolled


def _dispatch(runtime: VibeRuntime, event: VibeEvent) -> List[Dict[str, Any]]:
    return _collect_rolled(runtime, lambda: runtime.modules.dispatch(event))


@router.post("/tokens", response_model=TokenEventResponse)
async def token_created(payload: TokenPayload, request: Request) -> TokenEventResponse:
    """토큰 생성. PC/NPC가 아니면 추적하지 않는다."""
    runtime = get_runtime(request)
    view = payload.to_view()
    if view is None:
        logger.debug(f"Token {payload.token_id} skipped: type {payload.actor_type}")
        return TokenEventResponse(tracked=False)

    outcomes = _dispatch(
        runtime,
        VibeEvent(
            event_type=EventTypes.TOKEN_CREATED,
            data={"token": view},
            source=SOURCE,
            dedupe_key=view.token_id,
        ),
    )
    return TokenEventResponse(
        tracked=runtime.coordinator.participates(view), outcomes=outcomes
    )


@router.patch("/tokens/{token_id}", response_model=TokenEventResponse)
async def token_updated(
    token_id: str, patch: TokenPatch, request: Request
) -> TokenEventResponse:
    runtime = get_runtime(request)
    changes = patch.changes()
    result = runtime.registry.update_token(token_id, changes)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Token not found: {token_id}")

    previous, current = result
    outcomes = _dispatch(
        runtime,
        VibeEvent(
            event_type=EventTypes.TOKEN_UPDATED,
            data={"token": current, "previous": previous, "changes": sorted(changes)},
            source=SOURCE,
            dedupe_key=token_id,
        ),
    )
    return TokenEventResponse(
        tracked=runtime.coordinator.participates(current), outcomes=outcomes
    )


@router.delete("/tokens/{token_id}")
async def token_deleted(token_id: str, request: Request) -> Dict[str, bool]:
    runtime = get_runtime(request)
    known = runtime.registry.get_token(token_id) is not None
    runtime.modules.dispatch(
        VibeEvent(
            event_type=EventTypes.TOKEN_DELETED,
            data={"token_id": token_id},
            source=SOURCE,
            dedupe_key=token_id,
        )
    )
    return {"removed": known}


@router.put("/scenes/{scene_id}/walls", response_model=CountResponse)
async def set_walls(scene_id: str, body: WallsRequest, request: Request) -> CountResponse:
    """씬 벽 교체. 시야 메모는 전부 무효화."""
    runtime = get_runtime(request)
    count = runtime.registry.set_walls(
        scene_id, [wall.to_segment() for wall in body.walls]
    )
    runtime.oracle.clear()
    return CountResponse(count=count)


@router.post("/scenes/{scene_id}/ready", response_model=RecheckResponse)
async def scene_ready(scene_id: str, request: Request) -> RecheckResponse:
    runtime = get_runtime(request)
    outcomes = _collect_rolled(
        runtime,
        lambda: runtime.modules.process_scene_ready(
            scene_id, runtime.context(scene_id)
        ),
    )
    return RecheckResponse(
        outcomes=outcomes, processed_pairs=runtime.coordinator.processed_pairs
    )


@router.post("/sight-refresh", response_model=RecheckResponse)
async def sight_refresh(request: Request) -> RecheckResponse:
    runtime = get_runtime(request)
    outcomes = _dispatch(
        runtime,
        VibeEvent(event_type=EventTypes.SIGHT_REFRESH, data={}, source=SOURCE),
    )
    return RecheckResponse(
        outcomes=outcomes, processed_pairs=runtime.coordinator.processed_pairs
    )


@router.put("/actors", response_model=CountResponse)
async def set_actors(body: ActorsRequest, request: Request) -> CountResponse:
    get_runtime(request).registry.set_actors(body.actors)
    return CountResponse(count=len(body.actors))


@router.put("/users", response_model=CountResponse)
async def set_users(body: UsersRequest, request: Request) -> CountResponse:
    get_runtime(request).registry.set_users(user.to_info() for user in body.users)
    return CountResponse(count=len(body.users))


@router.post("/messages/drain")
async def drain_messages(request: Request) -> List[Dict[str, Any]]:
    """쌓인 귓속말 알림을 꺼내 간다 (호스트가 채팅으로 옮김)"""
    messenger = get_runtime(request).messenger
    drain = getattr(messenger, "drain", None)
    if drain is None:
        return []
    return [message.to_dict() for message in drain()]


@router.get("/auras")
async def list_auras(request: Request) -> List[Dict[str, Any]]:
    """현재 클라이언트에 그릴 오라 목록"""
    return [aura.to_dict() for aura in get_runtime(request).presenter.auras]


@router.websocket("/socket")
async def broadcast_socket(websocket: WebSocket) -> None:
    """방송 중계. 받은 메시지는 허브로, 허브 메시지는 소켓으로."""
    runtime: VibeRuntime = websocket.app.state.runtime
    hub = runtime.transport.hub
    client_id = f"ws-{uuid.uuid4().hex[:8]}"
    outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    loop = asyncio.get_running_loop()

    def relay(message: Dict[str, Any]) -> None:
        loop.call_soon_threadsafe(outbox.put_nowait, message)

    hub.subscribe(client_id, relay)
    await websocket.accept()
    logger.info(f"Socket connected: {client_id}")

    async def receive() -> None:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict) or message.get("type") not in MESSAGE_TYPES:
                logger.warning(f"Socket {client_id}: unknown message dropped")
                continue
            hub.publish(client_id, message)

    async def send() -> None:
        while True:
            message = await outbox.get()
            await websocket.send_json(message)

    tasks = [asyncio.create_task(receive()), asyncio.create_task(send())]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"Socket {client_id} failed: {error}")
    finally:
        hub.unsubscribe(client_id)
        logger.info(f"Socket disconnected: {client_id}")
