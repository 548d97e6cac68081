from datetime import datetime
from typing import Optional
from beanie import Document
from pydantic import Field

STATUS_PENDING = "pending"
STATUS_COMMITTED = "committed"


class Movie(Document):
    """One uploaded movie. Only committed records are visible in the catalog."""
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    filename: str
    file_path: str = Field(alias="filePath")
    file_size: int = Field(ge=0, alias="fileSize")
    content_type: Optional[str] = Field(None, alias="contentType")

    # Resolved asset locations, filled in at commit time
    download_url: Optional[str] = Field(None, alias="downloadURL")
    thumbnail_url: Optional[str] = Field(None, alias="thumbnailURL")
    thumbnail_path: Optional[str] = Field(None, alias="thumbnailPath")

    download_count: int = Field(default=0, ge=0, alias="downloadCount")
    uploaded_by: str = Field(alias="uploadedBy")
    status: str = Field(default=STATUS_PENDING)  # pending, committed

    reserved_at: datetime = Field(default_factory=datetime.utcnow, alias="reservedAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Settings:
        name = "movies"
        indexes = [
            "createdAt",
            "status",
            "uploadedBy",
        ]

    @property
    def is_committed(self) -> bool:
        return self.status == STATUS_COMMITTED
