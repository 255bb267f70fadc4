from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime


MediaType = Literal["image", "video"]
TagMode = Literal["set", "add", "remove"]


class TextureResponse(BaseModel):
    id: str
    organization_id: str
    name: str
    file_name: str
    file_url: str
    thumbnail_url: Optional[str] = None
    storage_path: str
    media_type: MediaType
    size: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    uploaded_by: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TextureListResponse(BaseModel):
    data: List[TextureResponse]
    count: int
    has_more: bool


class TextureUpdate(BaseModel):
    name: Optional[str] = None
    tags: Optional[List[str]] = None


class BatchTagUpdateRequest(BaseModel):
    texture_ids: List[str]
    tags: List[str]
    mode: TagMode = "set"


class BatchTagUpdateResult(BaseModel):
    updated: List[str] = Field(default_factory=list)
    unchanged: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)


class BatchDeleteRequest(BaseModel):
    texture_ids: List[str]


class BatchDeleteResult(BaseModel):
    deleted: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
