from datetime import datetime
from typing import Optional

from homeledger.schemas.common import CamelModel


class Document(CamelModel):
    id: int
    user_id: int
    name: str
    original_name: str
    category: str
    file_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    uploaded_at: datetime


class DocumentCreated(CamelModel):
    id: int
    success: bool = True


class DocumentCategory(CamelModel):
    category: str
    count: int
