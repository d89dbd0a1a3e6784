"""
CodeCollab - Usage Tracking Service

Append-only sink for download records.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from codecollab.models.download import DownloadEvent
from codecollab.schemas.tracking import DownloadTrackRequest

logger = structlog.get_logger(__name__)


class TrackingService:
    """Records usage events for authorized users."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_download(self, user_id: str, request: DownloadTrackRequest) -> DownloadEvent:
        """
        Append one download record.

        Args:
            user_id: Authorized user id
            request: What was downloaded

        Returns:
            The stored DownloadEvent
        """
        event = DownloadEvent(
            user_id=user_id,
            filename=request.filename,
            language=request.language,
            bytes=request.bytes,
        )
        self.db.add(event)
        await self.db.commit()
        await self.db.refresh(event)

        logger.info(
            "Download tracked",
            user_id=user_id,
            filename=request.filename,
            language=request.language,
            bytes=request.bytes,
        )
        return event

    async def downloads_for_user(self, user_id: str) -> List[DownloadEvent]:
        result = await self.db.execute(
            select(DownloadEvent)
            .where(DownloadEvent.user_id == user_id)
            .order_by(DownloadEvent.created_at)
        )
        return list(result.scalars().all())
