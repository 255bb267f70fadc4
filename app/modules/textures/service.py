from supabase import Client
from app.modules.textures.schemas import (
    TextureResponse, TextureListResponse, TextureUpdate,
    BatchTagUpdateResult, BatchDeleteResult
)
from app.modules.textures.s3_storage import S3TextureStore, s3_configured
from app.modules.textures.helpers import generate_filename, get_media_type, png_dimensions
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime, timezone
from fastapi import HTTPException, UploadFile
import base64
import binascii
import logging

logger = logging.getLogger(__name__)

TEXTURES_TABLE = "organization_textures"
TEXTURES_BUCKET = "textures"
AI_TAG = "ai-generated"


def merge_tags(current: List[str], tags: List[str], mode: str) -> List[str]:
    """New tag list for a texture under ``set``, ``add`` (union, order kept) or ``remove``."""
    if mode == "set":
        return list(dict.fromkeys(tags))
    if mode == "add":
        return list(dict.fromkeys(list(current) + list(tags)))
    return [t for t in current if t not in tags]


class TextureService:
    def __init__(self, supabase: Client, s3_store: Optional[S3TextureStore] = None):
        self.supabase = supabase
        self.s3_store = s3_store
        if self.s3_store is None and s3_configured():
            try:
                self.s3_store = S3TextureStore()
            except Exception as e:
                logger.warning(f"S3 storage initialization failed ({str(e)}), will use Supabase Storage")

    # Storage

    def _store(self, path: str, content: bytes, content_type: str) -> Tuple[str, str]:
        """Upload a binary; returns (storage_path, public_url)."""
        if self.s3_store:
            try:
                storage_path = self.s3_store.put(path, content, content_type)
                return storage_path, self.s3_store.public_url(path)
            except Exception as e:
                logger.error(f"S3 upload failed: {str(e)}")
                raise HTTPException(status_code=500, detail=f"Failed to upload to S3: {str(e)}")
        try:
            bucket = self.supabase.storage.from_(TEXTURES_BUCKET)
            bucket.upload(
                path,
                content,
                file_options={"content-type": content_type, "cache-control": "31536000", "upsert": "false"}
            )
            return path, bucket.get_public_url(path)
        except Exception as e:
            logger.error(f"Supabase Storage upload failed: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Failed to upload to storage: {str(e)}")

    def _remove(self, storage_paths: List[str]):
        """Best-effort removal of stored binaries"""
        paths = [p for p in storage_paths if p]
        s3_keys = [self.s3_store.key_of(p) for p in paths if self.s3_store and self.s3_store.owns(p)]
        bucket_paths = [p for p in paths if not p.startswith("s3://")]
        if s3_keys:
            self.s3_store.delete_many(s3_keys)
        if bucket_paths:
            try:
                self.supabase.storage.from_(TEXTURES_BUCKET).remove(bucket_paths)
            except Exception as e:
                logger.warning(f"Failed to delete texture files {bucket_paths}: {e}")

    def _insert(self, row: Dict[str, Any], cleanup: List[str]) -> TextureResponse:
        try:
            result = self.supabase.table(TEXTURES_TABLE).insert(row).execute()
        except Exception as e:
            self._remove(cleanup)
            raise HTTPException(status_code=500, detail=f"Failed to save texture record: {str(e)}")
        if not result.data:
            self._remove(cleanup)
            raise HTTPException(status_code=500, detail="Failed to save texture record")
        return TextureResponse(**result.data[0])

    # Library

    def list_textures(
        self,
        organization_id: str,
        limit: int = 50,
        offset: int = 0,
        media_type: Optional[str] = None,
        search: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> TextureListResponse:
        """List the organization's textures, newest first"""
        try:
            query = self.supabase.table(TEXTURES_TABLE)\
                .select("*", count="exact")\
                .eq("organization_id", organization_id)
            if media_type:
                query = query.eq("media_type", media_type)
            if search:
                query = query.ilike("name", f"%{search}%")
            if tags:
                query = query.contains("tags", tags)
            result = query.order("created_at", desc=True).limit(limit).offset(offset).execute()
            data = [TextureResponse(**row) for row in result.data or []]
            count = result.count if result.count is not None else len(data)
            return TextureListResponse(data=data, count=count, has_more=offset + len(data) < count)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_texture(self, texture_id: str) -> TextureResponse:
        try:
            result = self.supabase.table(TEXTURES_TABLE).select("*").eq("id", texture_id).maybe_single().execute()
            if not result or not result.data:
                raise HTTPException(status_code=404, detail="Texture not found")
            return TextureResponse(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def upload_texture(
        self,
        file: UploadFile,
        organization_id: str,
        user_id: str,
        name: Optional[str] = None,
        tags: Optional[List[str]] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        duration: Optional[float] = None,
        thumbnail: Optional[UploadFile] = None,
    ) -> TextureResponse:
        """Store an image or video in the organization's folder and record it"""
        media_type = get_media_type(file.content_type)
        if not media_type:
            raise HTTPException(
                status_code=400,
                detail=f"Unsupported file type: {file.content_type}. Only images and videos are allowed."
            )
        content = await file.read()
        if not content:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")

        original_name = file.filename or "texture"
        filename = generate_filename(original_name)
        storage_path, file_url = self._store(f"{organization_id}/{filename}", content, file.content_type)
        cleanup = [storage_path]

        thumbnail_url = None
        if thumbnail is not None:
            thumbnail_content = await thumbnail.read()
            if thumbnail_content:
                try:
                    thumbnail_path, thumbnail_url = self._store(
                        f"{organization_id}/thumbnails/{filename}.jpg", thumbnail_content, "image/jpeg"
                    )
                    cleanup.append(thumbnail_path)
                except HTTPException as e:
                    logger.warning(f"Failed to upload thumbnail for {filename}: {e.detail}")

        if media_type == "image" and (width is None or height is None):
            dimensions = png_dimensions(content)
            if dimensions:
                width, height = dimensions

        texture = self._insert({
            "organization_id": organization_id,
            "name": name or original_name.rsplit(".", 1)[0],
            "file_name": original_name,
            "file_url": file_url,
            "thumbnail_url": thumbnail_url,
            "storage_path": storage_path,
            "media_type": media_type,
            "size": len(content),
            "width": width,
            "height": height,
            "duration": duration if media_type == "video" else None,
            "uploaded_by": user_id,
            "tags": list(dict.fromkeys(tags or [])),
        }, cleanup)
        logger.info(f"Uploaded texture {texture.id} ({texture.name}) for organization {organization_id}")
        return texture

    def save_ai_generated_texture(
        self,
        image_base64: str,
        organization_id: str,
        user_id: str,
        name: Optional[str] = None,
        tags: Optional[List[str]] = None,
        prompt: Optional[str] = None,
        model: Optional[str] = None,
    ) -> TextureResponse:
        """Store a generated PNG in the library, tagged ``ai-generated``"""
        try:
            content = base64.b64decode(image_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="Image data is not valid base64")
        if not content:
            raise HTTPException(status_code=400, detail="Image data is empty")

        filename = generate_filename("ai-generated.png")
        storage_path, file_url = self._store(f"{organization_id}/{filename}", content, "image/png")
        dimensions = png_dimensions(content) or (None, None)
        now = datetime.now(timezone.utc)

        texture = self._insert({
            "organization_id": organization_id,
            "name": name or f"AI Generated - {now.strftime('%Y-%m-%d %H:%M:%S')}",
            "file_name": filename,
            "file_url": file_url,
            "thumbnail_url": None,
            "storage_path": storage_path,
            "media_type": "image",
            "size": len(content),
            "width": dimensions[0],
            "height": dimensions[1],
            "duration": None,
            "uploaded_by": user_id,
            "tags": merge_tags(tags or [], [AI_TAG], "add"),
            "metadata": {"source": "ai", "prompt": prompt, "model": model},
        }, [storage_path])
        logger.info(f"Saved AI-generated texture {texture.id} for organization {organization_id}")
        return texture

    def update_texture(self, texture_id: str, data: TextureUpdate) -> TextureResponse:
        """Rename or retag a texture"""
        if data.name is not None and not data.name.strip():
            raise HTTPException(status_code=400, detail="Name must not be empty")
        update_data: Dict[str, Any] = {}
        if data.name is not None:
            update_data["name"] = data.name.strip()
        if data.tags is not None:
            update_data["tags"] = list(dict.fromkeys(data.tags))
        if not update_data:
            return self.get_texture(texture_id)
        return self._update(texture_id, update_data)

    def _update(self, texture_id: str, update_data: Dict[str, Any]) -> TextureResponse:
        try:
            update_data = {**update_data, "updated_at": datetime.now(timezone.utc).isoformat()}
            result = self.supabase.table(TEXTURES_TABLE)\
                .update(update_data)\
                .eq("id", texture_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Texture not found")
            return TextureResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_texture(self, texture_id: str) -> bool:
        """Delete texture file, thumbnail and record"""
        texture = self.get_texture(texture_id)
        self._remove([texture.storage_path, self._thumbnail_path(texture)])
        try:
            result = self.supabase.table(TEXTURES_TABLE).delete().eq("id", texture_id).execute()
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @staticmethod
    def _thumbnail_path(texture: TextureResponse) -> Optional[str]:
        if not texture.thumbnail_url:
            return None
        folder, _, filename = texture.storage_path.rpartition("/")
        return f"{folder}/thumbnails/{filename}.jpg"

    # Batch operations

    def _fetch_many(self, texture_ids: List[str], organization_id: str) -> Dict[str, Dict[str, Any]]:
        result = self.supabase.table(TEXTURES_TABLE)\
            .select("*")\
            .in_("id", texture_ids)\
            .eq("organization_id", organization_id)\
            .execute()
        return {row["id"]: row for row in result.data or []}

    def batch_update_tags(
        self, texture_ids: List[str], tags: List[str], mode: str, organization_id: str
    ) -> BatchTagUpdateResult:
        """
        Apply one tag change to many textures. Textures whose tags would not
        change are left alone, so removing an absent tag writes nothing.
        """
        outcome = BatchTagUpdateResult()
        if not texture_ids:
            return outcome
        try:
            rows = self._fetch_many(texture_ids, organization_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        for texture_id in dict.fromkeys(texture_ids):
            row = rows.get(texture_id)
            if row is None:
                outcome.missing.append(texture_id)
                continue
            current = row.get("tags") or []
            new_tags = merge_tags(current, tags, mode)
            if new_tags == current:
                outcome.unchanged.append(texture_id)
                continue
            self._update(texture_id, {"tags": new_tags})
            outcome.updated.append(texture_id)

        logger.info(
            f"Batch tag update ({mode}): {len(outcome.updated)} updated, "
            f"{len(outcome.unchanged)} unchanged, {len(outcome.missing)} missing"
        )
        return outcome

    def batch_delete(self, texture_ids: List[str], organization_id: str) -> BatchDeleteResult:
        outcome = BatchDeleteResult()
        if not texture_ids:
            return outcome
        try:
            rows = self._fetch_many(texture_ids, organization_id)
            for texture_id in dict.fromkeys(texture_ids):
                row = rows.get(texture_id)
                if row is None:
                    outcome.missing.append(texture_id)
                    continue
                texture = TextureResponse(**row)
                self._remove([texture.storage_path, self._thumbnail_path(texture)])
                self.supabase.table(TEXTURES_TABLE).delete().eq("id", texture_id).execute()
                outcome.deleted.append(texture_id)
        except Exception as e:
            logger.error(f"Batch delete failed: {str(e)}")
            raise HTTPException(status_code=500, detail=str(e))
        logger.info(f"Batch deleted {len(outcome.deleted)} texture(s)")
        return outcome
