# 신고 API (모임 / 채팅 메시지)
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.errors import MeetupError
from app.crud.report_crud import ContentType, report_content
from app.database import get_db
from app.realtime.sse_pubsub import publish_message_deleted
from app.routers.deps import get_caller_id, http_error
from app.schemas.report import ReportBody, ReportResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.post("", response_model=ReportResponse)
async def post_report(
    body: ReportBody,
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> ReportResponse:
    """
    신고. 같은 신고자의 재신고는 already_reported=true (횟수 증가 없음).
    3명 누적 시 삭제되고 deleted=true.
    """
    try:
        result = report_content(db, body.content_type, body.content_id, caller_id, parent_id=body.parent_id)

    except MeetupError as e:
        raise http_error(e)

    except Exception:
        logger.exception("Error reporting %s %s", body.content_type, body.content_id)
        raise HTTPException(status_code=500, detail="Failed to process report")

    if result.deleted and body.content_type == ContentType.MESSAGE.value:
        await publish_message_deleted(body.parent_id, body.content_id)
    return ReportResponse(
        already_reported=result.already_reported,
        deleted=result.deleted,
        report_count=result.report_count,
    )
