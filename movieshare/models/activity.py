from datetime import datetime
from typing import Optional
from beanie import Document
from pydantic import Field


class ActivityLog(Document):
    user_id: str = Field(alias="userId")
    title: str
    time: datetime = Field(default_factory=datetime.utcnow)
    type: str = Field(default="info") # info, success, error
    meta: Optional[dict] = None # For extra data like movie_id

    class Settings:
        name = "activity_logs"
        indexes = ["userId", "time"]
