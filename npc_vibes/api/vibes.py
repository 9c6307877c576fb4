"""Vibes UI command endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

from npc_vibes.api.host import get_runtime
from npc_vibes.api.schemas import (
    CleanupRequest,
    ConnectionRequest,
    ConnectionResponse,
    CountResponse,
    InteractionRequest,
    OptionsPatch,
    OptionsResponse,
    RecheckResponse,
)
from npc_vibes.core.errors import (
    InvalidTransitionError,
    MalformedSnapshotError,
    PrivilegeError,
    StoreWriteError,
)
from npc_vibes.core.logging import get_logger
from npc_vibes.runtime import VibeRuntime

logger = get_logger(__name__)

router = APIRouter(prefix="/vibes", tags=["vibes"])

VISUAL_OPTIONS = {"enable_visual_indicators", "aura_opacity", "aura_size"}
SIGHT_OPTIONS = {
    "default_sight_range",
    "ignore_walls",
    "npc_vision_exempt",
    "require_humanoid",
}


def _require_gm(runtime: VibeRuntime, action: str) -> None:
    if not runtime.client.is_gm:
        raise HTTPException(status_code=403, detail=f"Only GMs can {action}")


@router.post("/recheck", response_model=RecheckResponse)
async def recheck(request: Request) -> RecheckResponse:
    """현재 씬의 모든 PC 재확인"""
    runtime = get_runtime(request)
    outcomes = runtime.command(runtime.coordinator.refresh_all)
    return RecheckResponse(
        outcomes=[outcome.to_dict() for outcome in outcomes],
        processed_pairs=runtime.coordinator.processed_pairs,
    )


@router.get("/export")
async def export_snapshot(request: Request) -> Dict[str, Any]:
    runtime = get_runtime(request)
    return runtime.command(runtime.coordinator.export_snapshot)


@router.post("/import")
async def import_snapshot(request: Request) -> Dict[str, Any]:
    """원본 JSON 본문 그대로 가져오기. 구조 오류면 400, 상태 불변."""
    runtime = get_runtime(request)
    _require_gm(runtime, "import vibe data")
    raw = await request.body()
    try:
        return runtime.command(runtime.coordinator.import_snapshot, raw)
    except MalformedSnapshotError as e:
        logger.warning(f"Import rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except StoreWriteError as e:
        logger.error(f"Import save failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/reset")
async def reset_all(request: Request) -> Dict[str, bool]:
    runtime = get_runtime(request)
    try:
        runtime.command(runtime.coordinator.reset_all)
    except PrivilegeError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StoreWriteError as e:
        logger.error(f"Reset save failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"reset": True}


@router.put("/connections", response_model=ConnectionResponse)
async def set_connection(body: ConnectionRequest, request: Request) -> ConnectionResponse:
    """Connection 단계 변경. 2단계 이상 상승은 400."""
    runtime = get_runtime(request)
    try:
        record = runtime.command(
            runtime.coordinator.set_connection_level,
            body.pc_id,
            body.npc_id,
            body.level,
            actor_id=body.actor_id,
        )
    except PrivilegeError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ConnectionResponse(
        pc_id=body.pc_id,
        npc_id=body.npc_id,
        level=record.level,
        updated_at=record.updated_at,
    )


@router.get("/connections/{pc_id}/{npc_id}")
async def get_connection(pc_id: str, npc_id: str, request: Request) -> Dict[str, Any]:
    runtime = get_runtime(request)
    return runtime.command(runtime.coordinator.connection_details, pc_id, npc_id)


@router.post("/interactions")
async def record_interaction(body: InteractionRequest, request: Request) -> Dict[str, Any]:
    """상호작용 기록. 제안 단계는 응답에만 담기고 적용되지 않는다."""
    runtime = get_runtime(request)
    try:
        summary = runtime.command(
            runtime.coordinator.record_interaction,
            body.pc_id,
            body.npc_id,
            body.interaction_type,
            body.description,
        )
    except PrivilegeError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return summary.to_dict()


@router.post("/session/clear", response_model=CountResponse)
async def clear_session(request: Request) -> CountResponse:
    runtime = get_runtime(request)
    return CountResponse(count=runtime.command(runtime.coordinator.clear_session))


@router.post("/cleanup", response_model=CountResponse)
async def cleanup_orphans(body: CleanupRequest, request: Request) -> CountResponse:
    runtime = get_runtime(request)
    _require_gm(runtime, "clean up vibe data")
    removed = runtime.command(runtime.coordinator.cleanup_orphans, body.valid_ids)
    return CountResponse(count=removed)


@router.get("/book")
async def vibe_book(request: Request, pc_id: Optional[str] = None) -> Dict[str, Any]:
    """pc_id 없으면 GM 보기"""
    runtime = get_runtime(request)
    return runtime.command(runtime.coordinator.vibe_book, pc_id)


@router.get("/debug")
async def debug_info(request: Request) -> Dict[str, Any]:
    return get_runtime(request).coordinator.debug_info()


@router.patch("/options", response_model=OptionsResponse)
async def update_options(body: OptionsPatch, request: Request) -> OptionsResponse:
    """월드 옵션 변경. 시야 관련이면 메모 무효화, 오라 관련이면 다시 그림."""
    runtime = get_runtime(request)
    _require_gm(runtime, "change world options")
    changed = runtime.options.update(**body.model_dump(exclude_unset=True))
    if SIGHT_OPTIONS & changed.keys():
        runtime.oracle.clear()
    if VISUAL_OPTIONS & changed.keys():
        runtime.command(runtime.coordinator.refresh_visuals)
    if changed:
        logger.info(f"Options changed: {changed}")
    return OptionsResponse(changed=changed, options=runtime.options.to_dict())
