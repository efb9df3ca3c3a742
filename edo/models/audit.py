import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import Field
from edo.models.base import ApiModel

def _now() -> datetime:
    return datetime.now(timezone.utc)

class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

class HistoryEntry(ApiModel):
    """One line of a document's own history tab."""
    id: str = Field(default_factory=lambda: f"hist_{uuid.uuid4().hex}")
    text: str
    timestamp: datetime = Field(default_factory=_now)

class ActivityEntry(ApiModel):
    """Console-wide activity journal entry."""
    id: str = Field(default_factory=lambda: f"log_{uuid.uuid4().hex}")
    doc_id: Optional[str] = None
    message: str
    timestamp: datetime = Field(default_factory=_now)

class Notice(ApiModel):
    """Something the user must see: an alert, a demo-mode warning or a hard error."""
    level: NoticeLevel = NoticeLevel.INFO
    message: str
    doc_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)
