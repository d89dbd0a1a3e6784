"""
CodeCollab - Download Event Model

Append-only record of code downloads, keyed by the authorized user id.
"""

from sqlalchemy import Column, String, DateTime, Integer
from sqlalchemy.sql import func
import uuid

from codecollab.core.database import Base


class DownloadEvent(Base):
    """One download of editor content by an authorized user."""

    __tablename__ = "download_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Opaque id issued by the account service
    user_id = Column(String(64), nullable=False, index=True)

    filename = Column(String(255), nullable=True)
    language = Column(String(32), nullable=True)
    bytes = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<DownloadEvent(id={self.id}, user_id='{self.user_id}', filename='{self.filename}')>"
