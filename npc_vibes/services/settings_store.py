"""Settings Store — 월드 범위 key-value 영속화

모든 클라이언트가 공유하는 저장소. get/set 의미만 제공한다.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from npc_vibes.core.errors import StoreWriteError
from npc_vibes.core.logging import get_logger
from npc_vibes.db.models import WorldSettingModel

logger = get_logger(__name__)


class SettingsStore(ABC):
    """월드 설정 저장소 인터페이스"""

    @abstractmethod
    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, namespace: str, key: str, value: Any) -> None:
        """실패 시 StoreWriteError"""
        ...


class SqlSettingsStore(SettingsStore):
    """SQLAlchemy 세션 기반 구현. 값은 JSON 텍스트로 저장."""

    def __init__(self, db_session: Session) -> None:
        self._db = db_session

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        row = self._db.get(WorldSettingModel, (namespace, key))
        if row is None:
            return default
        return json.loads(row.value)

    def set(self, namespace: str, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
            row = self._db.get(WorldSettingModel, (namespace, key))
            if row is None:
                self._db.add(
                    WorldSettingModel(namespace=namespace, key=key, value=payload)
                )
            else:
                row.value = payload
            self._db.commit()
        except (SQLAlchemyError, TypeError, ValueError) as e:
            self._db.rollback()
            logger.error(f"Failed to save setting {namespace}.{key}: {e}")
            raise StoreWriteError(f"Failed to save {namespace}.{key}") from e

    def refresh(self) -> None:
        """다른 클라이언트의 커밋을 읽도록 세션 캐시 만료"""
        self._db.expire_all()
