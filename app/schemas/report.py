# 신고 요청/응답 스키마
# 필드 누락은 422가 아니라 InvalidArgument(400)로 처리하기 위해 모두 Optional

from typing import Optional

from pydantic import BaseModel


class ReportBody(BaseModel):
    content_type: Optional[str] = None  # "meetup" | "message"
    content_id: Optional[int] = None
    parent_id: Optional[int] = None  # 메시지 신고 시 모임 id 필수


class ReportResponse(BaseModel):
    already_reported: bool = False
    deleted: bool = False
    report_count: int = 0
