# 도메인 예외: 라우터에서 HTTPException으로 변환


class MeetupError(Exception):
    """모든 도메인 예외의 기반. message + HTTP status_code를 가짐."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidArgument(MeetupError):
    """잘못된 요청 값. 재시도 없음."""

    status_code = 400


class PermissionDenied(MeetupError):
    """호출자 식별 불가 또는 대상에 대한 권한 없음."""

    status_code = 403


class NotFound(MeetupError):
    """대상 없음. 대부분 이미 삭제된 경우 → 클라이언트는 목록을 새로고침."""

    status_code = 404


class Conflict(MeetupError):
    """현재 상태와 맞지 않는 요청 (허용되지 않은 상태 전이, 중복 모임 등)."""

    status_code = 409


class Internal(MeetupError):
    status_code = 500
