from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from app.modules.textures.schemas import TextureResponse


ImageEndpoint = Literal["generateContent", "generateImages"]


class ImageGenerateRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    model: Optional[str] = None
    endpoint: Optional[ImageEndpoint] = None
    enhance: bool = True
    save: bool = False
    name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ImageEditRequest(BaseModel):
    # base64, data URI or http(s) URL
    source_image: str
    mask_image: Optional[str] = None
    prompt: str = Field(..., min_length=1)
    model: Optional[str] = None
    save: bool = False
    name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class GeneratedImage(BaseModel):
    image_base64: str
    mime_type: str = "image/png"
    model: str
    endpoint: ImageEndpoint
    prompt: str
    texture: Optional[TextureResponse] = None
