"""Health check endpoint."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from npc_vibes.db.database import get_db

router = APIRouter()


@router.get("/health")
def health_check(request: Request, db: Session = Depends(get_db)) -> dict[str, str]:
    """Return application, database and runtime health status."""
    runtime = getattr(request.app.state, "runtime", None)
    status = {"runtime": "ready" if runtime is not None else "starting"}
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected", **status}
    except Exception:
        return {"status": "error", "database": "disconnected", **status}
