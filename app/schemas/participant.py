# 참여자 푸시 토큰 스키마

from pydantic import BaseModel, Field


class TokenBody(BaseModel):
    """푸시 토큰 등록/갱신 (참여자당 1개, 덮어쓰기)."""

    token: str = Field(..., min_length=1, max_length=512)


class TokenResponse(BaseModel):
    participant_id: str
    registered: bool
