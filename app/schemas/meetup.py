# 모임 API 요청/응답 스키마

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

MeetupStatusLiteral = Literal["ACTIVE", "CHAT_OPEN", "EXPIRED"]
MeetupCategoryLiteral = Literal["A", "B"]


class MeetupCreate(BaseModel):
    """모임 생성 요청. 작성자는 X-Participant-Id 헤더로 식별."""

    category: MeetupCategoryLiteral = "A"
    meeting_time: datetime
    location_text: str = Field(..., min_length=1, max_length=100)
    message: str = Field(default="", max_length=200)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class MeetupResponse(BaseModel):
    """모임 응답. 시간 창 관련 값은 응답 시점의 서버 시각 기준."""

    id: int
    creator_id: str
    category: MeetupCategoryLiteral
    status: MeetupStatusLiteral
    meeting_time: datetime
    created_at: datetime
    location_text: str
    message: str
    lat: float
    lng: float
    participant_ids: List[str]
    participant_count: int
    report_count: int
    chat_opens_at: datetime
    chat_closes_at: datetime
    should_be_open: bool
    can_toggle_participation: bool
    # 목록에서 기준 좌표를 줬을 때만 의미 있음
    distance_km: Optional[float] = None


class ParticipationResponse(BaseModel):
    meetup_id: int
    participating: bool
    participant_count: int


class StatusTransitionBody(BaseModel):
    """클라이언트가 관측한 상태(expected)와 시간 창상 기대 상태(target)."""

    expected_status: MeetupStatusLiteral
    target_status: MeetupStatusLiteral


class StatusTransitionResponse(BaseModel):
    meetup_id: int
    applied: bool
    status: MeetupStatusLiteral


class NotifyResponse(BaseModel):
    success_count: int
    failure_count: int
