"""
CodeCollab - Usage Tracking Schemas

Request/response bodies for the download tracking endpoint.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class DownloadTrackRequest(BaseModel):
    """A client-side download of the editor buffer."""
    filename: Optional[str] = Field(default=None, max_length=255)
    language: Optional[str] = Field(default=None, max_length=32)
    bytes: int = 0

    @field_validator("bytes", mode="before")
    @classmethod
    def coerce_bytes(cls, v):
        """Anything that is not a number counts as zero bytes."""
        try:
            return max(int(v), 0)
        except (TypeError, ValueError):
            return 0


class TrackResponse(BaseModel):
    ok: bool = True
