"""이벤트 유형 상수

호스트 어댑터가 발행하는 생명주기 이벤트와
코디네이터가 발행하는 내부 이벤트로 나뉜다.
"""


class EventTypes:
    """이벤트 유형 문자열 상수"""

    # === Host lifecycle (adapter → modules) ===
    TOKEN_CREATED = "token_created"
    TOKEN_UPDATED = "token_updated"
    TOKEN_DELETED = "token_deleted"
    SCENE_READY = "scene_ready"
    SIGHT_REFRESH = "sight_refresh"
    BROADCAST_RECEIVED = "broadcast_received"

    # === Vibes (coordinator → modules) ===
    DISPOSITION_ROLLED = "disposition_rolled"
    DISPOSITION_CHANGED = "disposition_changed"
    CONNECTION_CHANGED = "connection_changed"
    CONNECTION_SUGGESTED = "connection_suggested"
