"""
CodeCollab - Tracking API Endpoints

REST endpoints for recording usage events.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from codecollab.core.database import get_db
from codecollab.core.security import get_current_user_id
from codecollab.schemas.tracking import DownloadTrackRequest, TrackResponse
from codecollab.services.tracking import TrackingService

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/download", response_model=TrackResponse)
async def track_download(
    request: DownloadTrackRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Record that the user downloaded editor content.

    Args:
        request: Download details
        user_id: Authorized user id
        db: Database session

    Returns:
        TrackResponse acknowledging the record
    """
    try:
        await TrackingService(db).record_download(user_id, request)
    except SQLAlchemyError as e:
        logger.error("Failed to track download", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )
    return TrackResponse()
