"""Vibes 에러 분류

- MalformedSnapshotError: 가져오기 데이터 구조 오류 (상태 변경 없음)
- StoreWriteError: 영속화 실패 (메모리 캐시는 유지)
- PrivilegeError: GM 전용 동작을 일반 클라이언트가 호출
- InvalidTransitionError: Connection 단계 2단계 이상 상승 시도
"""


class VibesError(Exception):
    """모든 Vibes 에러의 기반"""


class MalformedSnapshotError(VibesError, ValueError):
    """스냅샷 최상위 키 누락 또는 타입 불일치"""


class StoreWriteError(VibesError, RuntimeError):
    """설정 저장소 쓰기 실패"""


class PrivilegeError(VibesError, PermissionError):
    """GM 권한 필요"""


class InvalidTransitionError(VibesError, ValueError):
    """허용되지 않는 Connection 전이"""
