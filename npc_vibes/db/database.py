"""Engine and sessions for the world settings database.

Every client process reads and writes the same ``world_settings`` table,
so the database URL is the one piece of state the processes share.
"""

from collections.abc import Generator
from typing import Any, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from npc_vibes.config import settings
from npc_vibes.db.models import Base


def connect_args_for(url: str) -> dict[str, Any]:
    """SQLite connections are used by the flush task and request handlers alike."""
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args_for(settings.DATABASE_URL),
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create the world settings table if it does not exist yet."""
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a short-lived session for one request.

    The runtime keeps its own long-lived session for the relationship
    document; this one serves read-only checks such as::

        @router.get("/health")
        def health_check(request: Request, db: Session = Depends(get_db)):
            db.execute(text("SELECT 1"))
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
