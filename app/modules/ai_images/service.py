"""
Server-side image generation against the Gemini/Imagen REST API.

The provider key only lives in settings; requests carry it in the
``x-goog-api-key`` header so it never appears in URLs or client code.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import HTTPException

from app.config import settings
from app.modules.ai_images.schemas import GeneratedImage

logger = logging.getLogger(__name__)

BROADCAST_SUFFIX = (
    ", professional quality, suitable for broadcast graphics, high resolution, "
    "cinematic lighting, 16:9 aspect ratio"
)
ASPECT_RATIO = "16:9"
BILLING_MESSAGE = (
    "Imagen API requires billing to be enabled on your Google Cloud project. "
    "Try using Gemini 2.5 Flash instead."
)
CORS_MESSAGE = "The request was blocked by a cross-origin (CORS) policy; check the provider endpoint configuration."
NO_IMAGE_MESSAGE = "No image data in response. Try rephrasing your prompt or use a different model."


def enhance_prompt(prompt: str) -> str:
    return f"{prompt.strip()}{BROADCAST_SUFFIX}"


def build_edit_prompt(prompt: str) -> str:
    return (
        f"Edit this image: {prompt.strip()}. Keep the rest of the image unchanged. "
        "Only modify the areas that match the description."
    )


def strip_data_uri(value: str) -> str:
    if value.startswith("data:"):
        return value.split(",", 1)[1] if "," in value else ""
    return value


def extract_image_data(payload: Dict[str, Any]) -> Optional[str]:
    """First base64 image in a generateContent or generateImages reply."""
    for candidate in payload.get("candidates") or []:
        for part in (candidate.get("content") or {}).get("parts") or []:
            data = (part.get("inlineData") or part.get("inline_data") or {}).get("data")
            if data:
                return data
    generated = payload.get("generatedImages") or []
    if generated:
        image = generated[0].get("image") or {}
        return image.get("imageBytes") or image.get("image_bytes")
    return None


def describe_provider_error(status_code: int, body: str) -> str:
    if "billing" in body.lower():
        return BILLING_MESSAGE
    if "cors" in body.lower():
        return CORS_MESSAGE
    return f"API error: {status_code}"


def texture_url_prefixes() -> List[str]:
    """Public URL prefixes of the texture library; the only hosts edit sources are fetched from."""
    prefixes = []
    if settings.s3_bucket_name:
        prefixes.append(f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/")
    if settings.supabase_url:
        prefixes.append(f"{settings.supabase_url.rstrip('/')}/storage/v1/object/public/textures/")
    return prefixes


class ImageGenerationService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
        source_url_prefixes: Optional[List[str]] = None,
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.base_url = (base_url or settings.gemini_api_base_url).rstrip("/")
        self.model = model or settings.image_model
        self.endpoint = endpoint or settings.image_endpoint
        self.timeout = timeout if timeout is not None else settings.image_request_timeout
        self.transport = transport
        self.source_url_prefixes = (
            source_url_prefixes if source_url_prefixes is not None else texture_url_prefixes()
        )

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def _post(self, model: str, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise HTTPException(status_code=503, detail="Image generation is not configured")
        url = f"{self.base_url}/models/{model}:{endpoint}"
        try:
            with self._client() as client:
                response = client.post(url, json=body, headers={"x-goog-api-key": self.api_key})
        except httpx.HTTPError as e:
            logger.error(f"Image provider request failed ({model}:{endpoint}): {e}")
            detail = CORS_MESSAGE if "cors" in str(e).lower() else f"Image provider unreachable: {str(e)}"
            raise HTTPException(status_code=502, detail=detail)

        if response.status_code >= 400:
            logger.error(f"Image provider error {response.status_code}: {response.text[:500]}")
            raise HTTPException(status_code=502, detail=describe_provider_error(response.status_code, response.text))
        try:
            return response.json()
        except ValueError:
            raise HTTPException(status_code=502, detail="Image provider returned a non-JSON reply")

    def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
        enhance: bool = True,
    ) -> GeneratedImage:
        """Text-to-image through generateContent (Gemini) or generateImages (Imagen)"""
        if not prompt.strip():
            raise HTTPException(status_code=400, detail="Prompt must not be empty")
        model = model or self.model
        endpoint = endpoint or self.endpoint
        full_prompt = enhance_prompt(prompt) if enhance else prompt.strip()
        logger.info(f"Generating image with {model} ({endpoint}): {full_prompt[:100]!r}")

        if endpoint == "generateImages":
            body = {
                "prompt": full_prompt,
                "config": {
                    "numberOfImages": 1,
                    "aspectRatio": ASPECT_RATIO,
                    "safetyFilterLevel": "BLOCK_MEDIUM_AND_ABOVE",
                },
            }
        else:
            body = {
                "contents": [{"parts": [{"text": full_prompt}]}],
                "generationConfig": {
                    "responseModalities": ["IMAGE", "TEXT"],
                    "imageConfig": {"aspectRatio": ASPECT_RATIO},
                },
            }

        image_data = extract_image_data(self._post(model, endpoint, body))
        if not image_data:
            raise HTTPException(status_code=502, detail=NO_IMAGE_MESSAGE)
        return GeneratedImage(image_base64=image_data, model=model, endpoint=endpoint, prompt=full_prompt)

    def edit(
        self,
        source_image: str,
        prompt: str,
        mask_image: Optional[str] = None,
        model: Optional[str] = None,
    ) -> GeneratedImage:
        """Inpainting-style edit through Gemini's multimodal generateContent"""
        if not prompt.strip():
            raise HTTPException(status_code=400, detail="Prompt must not be empty")
        model = model or self.model
        source_b64 = self._load_image(source_image)

        parts = [{"inlineData": {"mimeType": "image/png", "data": source_b64}}]
        if mask_image:
            parts.append({"inlineData": {"mimeType": "image/png", "data": strip_data_uri(mask_image)}})
        edit_prompt = build_edit_prompt(prompt)
        parts.append({"text": edit_prompt})
        body = {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"], "temperature": 0.4},
        }

        logger.info(f"Editing image with {model}: {prompt[:100]!r} (mask={'yes' if mask_image else 'no'})")
        image_data = extract_image_data(self._post(model, "generateContent", body))
        if not image_data:
            raise HTTPException(status_code=502, detail=NO_IMAGE_MESSAGE)
        return GeneratedImage(image_base64=image_data, model=model, endpoint="generateContent", prompt=edit_prompt)

    def _load_image(self, source: str) -> str:
        """Base64 payload of a data URI, raw base64 string or texture library URL."""
        if source.startswith(("http://", "https://")):
            if not any(source.startswith(prefix) for prefix in self.source_url_prefixes):
                logger.warning(f"Rejected edit source outside the texture library: {source[:200]!r}")
                raise HTTPException(status_code=400, detail="Source image URL must point to the texture library")
            try:
                with self._client() as client:
                    response = client.get(source)
                    response.raise_for_status()
            except httpx.HTTPError as e:
                raise HTTPException(status_code=400, detail=f"Could not fetch source image: {str(e)}")
            return base64.b64encode(response.content).decode("ascii")
        data = strip_data_uri(source)
        if not data:
            raise HTTPException(status_code=400, detail="Source image is empty")
        return data
