# 채팅 메시지 스키마

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MessageCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meetup_id: int
    author_id: str
    text: str
    timestamp: datetime
    report_count: int
