"""Tests for the texture library: helpers, tag merging, batch operations and routes."""

import base64
import struct

import pytest
from fastapi import HTTPException

from app.modules.textures.helpers import (
    format_duration,
    format_file_size,
    generate_filename,
    get_media_type,
    png_dimensions,
)
from app.modules.textures.s3_storage import S3TextureStore
from app.modules.textures.service import AI_TAG, TEXTURES_TABLE, TextureService, merge_tags

from tests.conftest import ORG_ID, OTHER_ORG_ID


def make_png(width: int = 1920, height: int = 1080) -> bytes:
    return (
        b"\x89PNG\r\n\x1a\n"
        + struct.pack(">I", 13)
        + b"IHDR"
        + struct.pack(">II", width, height)
        + b"\x08\x06\x00\x00\x00"
        + b"\x00" * 4
    )


def seed_texture(fake_supabase, name="Logo", tags=None, organization_id=ORG_ID):
    return fake_supabase.seed(TEXTURES_TABLE, {
        "organization_id": organization_id,
        "name": name,
        "file_name": f"{name}.png",
        "file_url": f"https://storage.test/textures/{organization_id}/{name}.png",
        "storage_path": f"{organization_id}/{name}.png",
        "media_type": "image",
        "tags": list(tags or []),
        "created_at": "2024-05-01T10:00:00+00:00",
    })[0]


class TestHelpers:
    def test_generate_filename(self):
        assert generate_filename("My Logo (final).png", 1700000000000, "a1b2c3") == \
            "1700000000000-a1b2c3-My_Logo__final_.png"

    def test_generate_filename_without_extension(self):
        assert generate_filename("README", 1, "abcdef") == "1-abcdef-README"

    def test_generate_filename_truncates_stem(self):
        name = generate_filename("x" * 80 + ".jpg", 1, "abcdef")
        assert name == "1-abcdef-" + "x" * 50 + ".jpg"

    @pytest.mark.parametrize("size,expected", [
        (512, "512 B"),
        (2048, "2.0 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 ** 3, "3.0 GB"),
    ])
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected

    def test_format_duration(self):
        assert format_duration(125.7) == "2:05"

    def test_media_type(self):
        assert get_media_type("image/png") == "image"
        assert get_media_type("video/mp4") == "video"
        assert get_media_type("application/pdf") is None

    def test_png_dimensions(self):
        assert png_dimensions(make_png(640, 360)) == (640, 360)
        assert png_dimensions(b"not a png") is None


class TestMergeTags:
    def test_set_replaces(self):
        assert merge_tags(["a", "b"], ["c", "c"], "set") == ["c"]

    def test_add_keeps_order(self):
        assert merge_tags(["a", "b"], ["b", "c"], "add") == ["a", "b", "c"]

    def test_remove(self):
        assert merge_tags(["a", "b"], ["a"], "remove") == ["b"]

    def test_remove_absent_tag_is_noop(self):
        assert merge_tags(["a", "b"], ["zzz"], "remove") == ["a", "b"]


class TestBatchTagUpdate:
    """Tests for batch tag updates."""

    def test_remove_absent_tag_leaves_rows_untouched(self, fake_supabase):
        first = seed_texture(fake_supabase, "One", ["sports"])
        second = seed_texture(fake_supabase, "Two", ["news", "sports"])
        service = TextureService(fake_supabase)

        result = service.batch_update_tags([first["id"], second["id"]], ["weather"], "remove", ORG_ID)

        assert result.updated == []
        assert result.unchanged == [first["id"], second["id"]]
        assert all("updated_at" not in row for row in fake_supabase.rows(TEXTURES_TABLE))

    def test_remove_is_idempotent(self, fake_supabase):
        texture = seed_texture(fake_supabase, "One", ["sports", "live"])
        service = TextureService(fake_supabase)

        first = service.batch_update_tags([texture["id"]], ["live"], "remove", ORG_ID)
        second = service.batch_update_tags([texture["id"]], ["live"], "remove", ORG_ID)

        assert first.updated == [texture["id"]]
        assert second.unchanged == [texture["id"]]
        assert fake_supabase.rows(TEXTURES_TABLE)[0]["tags"] == ["sports"]

    def test_other_organization_is_missing(self, fake_supabase):
        foreign = seed_texture(fake_supabase, "Theirs", organization_id=OTHER_ORG_ID)
        result = TextureService(fake_supabase).batch_update_tags([foreign["id"]], ["x"], "add", ORG_ID)
        assert result.missing == [foreign["id"]]
        assert fake_supabase.rows(TEXTURES_TABLE)[0]["tags"] == []


class TestBatchDelete:
    def test_deletes_rows_and_files(self, fake_supabase):
        texture = seed_texture(fake_supabase)
        fake_supabase.storage.files[("textures", texture["storage_path"])] = b"png"

        result = TextureService(fake_supabase).batch_delete([texture["id"], "nope"], ORG_ID)

        assert result.deleted == [texture["id"]]
        assert result.missing == ["nope"]
        assert fake_supabase.rows(TEXTURES_TABLE) == []
        assert fake_supabase.storage.files == {}


class TestSaveAiGeneratedTexture:
    def test_stores_png_with_tag_and_provenance(self, fake_supabase):
        image = base64.b64encode(make_png(1280, 720)).decode()
        texture = TextureService(fake_supabase).save_ai_generated_texture(
            image, ORG_ID, "user-1", tags=["promo"], prompt="stadium at night", model="gemini-2.5-flash-image"
        )
        assert texture.tags == ["promo", AI_TAG]
        assert (texture.width, texture.height) == (1280, 720)
        assert texture.metadata == {"source": "ai", "prompt": "stadium at night", "model": "gemini-2.5-flash-image"}
        assert texture.storage_path.startswith(f"{ORG_ID}/")
        assert len(fake_supabase.storage.files) == 1

    def test_invalid_base64(self, fake_supabase):
        with pytest.raises(HTTPException) as exc:
            TextureService(fake_supabase).save_ai_generated_texture("%%%", ORG_ID, "user-1")
        assert exc.value.status_code == 400

    def test_failed_insert_removes_upload(self, fake_supabase):
        fake_supabase.fail_tables[TEXTURES_TABLE] = "insert failed"
        image = base64.b64encode(make_png()).decode()
        with pytest.raises(HTTPException) as exc:
            TextureService(fake_supabase).save_ai_generated_texture(image, ORG_ID, "user-1")
        assert exc.value.status_code == 500
        assert fake_supabase.storage.files == {}


class TestTextureRoutes:
    def test_upload_reads_png_dimensions(self, client, fake_supabase):
        response = client.post(
            "/api/v1/textures",
            files={"file": ("logo.png", make_png(800, 600), "image/png")},
            data={"tags": "brand, logo"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "logo"
        assert (body["width"], body["height"]) == (800, 600)
        assert body["tags"] == ["brand", "logo"]
        assert body["media_type"] == "image"

    def test_upload_rejects_other_types(self, client):
        response = client.post("/api/v1/textures", files={"file": ("doc.pdf", b"%PDF", "application/pdf")})
        assert response.status_code == 400

    def test_list_filters_by_search_and_tags(self, client, fake_supabase):
        seed_texture(fake_supabase, "Stadium", ["sports"])
        seed_texture(fake_supabase, "Studio", ["news"])
        seed_texture(fake_supabase, "Stadium B", ["sports"], organization_id=OTHER_ORG_ID)

        response = client.get("/api/v1/textures", params={"search": "stad", "tags": "sports"})

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["data"][0]["name"] == "Stadium"
        assert body["has_more"] is False

    def test_member_without_permission_is_forbidden(self, client, as_member):
        assert client.get("/api/v1/textures").status_code == 403

    def test_member_cannot_read_other_organization(self, client, fake_supabase, as_member):
        fake_supabase.grant(as_member["id"], "textures:read")
        foreign = seed_texture(fake_supabase, "Theirs", organization_id=OTHER_ORG_ID)
        assert client.get(f"/api/v1/textures/{foreign['id']}").status_code == 403

    def test_batch_tags_route(self, client, fake_supabase):
        texture = seed_texture(fake_supabase, "One", ["a"])
        response = client.post(
            "/api/v1/textures/batch/tags",
            json={"texture_ids": [texture["id"]], "tags": ["b"], "mode": "add"},
        )
        assert response.status_code == 200
        assert response.json()["updated"] == [texture["id"]]
        assert fake_supabase.rows(TEXTURES_TABLE)[0]["tags"] == ["a", "b"]


class FakeS3Client:
    def __init__(self, failing_keys=()):
        self.objects = {}
        self.failing_keys = set(failing_keys)
        self.delete_calls = 0

    def put_object(self, Bucket, Key, Body, ContentType, CacheControl):
        self.objects[Key] = (Body, ContentType)

    def delete_objects(self, Bucket, Delete):
        self.delete_calls += 1
        errors = []
        for item in Delete["Objects"]:
            if item["Key"] in self.failing_keys:
                errors.append({"Key": item["Key"], "Code": "AccessDenied"})
            else:
                self.objects.pop(item["Key"], None)
        return {"Errors": errors}


class TestS3Storage:
    @pytest.fixture
    def s3(self):
        return FakeS3Client()

    @pytest.fixture
    def service(self, fake_supabase, s3):
        store = S3TextureStore(client=s3, bucket_name="gfx-textures", region="eu-west-1")
        return TextureService(fake_supabase, s3_store=store)

    def test_ai_texture_goes_to_s3(self, service, s3, fake_supabase):
        texture = service.save_ai_generated_texture(base64.b64encode(make_png()).decode(), ORG_ID, "user-1")
        key = texture.storage_path[len("s3://gfx-textures/"):]
        assert texture.storage_path.startswith(f"s3://gfx-textures/{ORG_ID}/")
        assert texture.file_url == f"https://gfx-textures.s3.eu-west-1.amazonaws.com/{key}"
        assert s3.objects[key][1] == "image/png"
        assert fake_supabase.storage.files == {}

    def test_batch_delete_removes_objects(self, service, s3, fake_supabase):
        first = service.save_ai_generated_texture(base64.b64encode(make_png()).decode(), ORG_ID, "user-1")
        second = service.save_ai_generated_texture(base64.b64encode(make_png()).decode(), ORG_ID, "user-1")

        result = service.batch_delete([first.id, second.id], ORG_ID)

        assert result.deleted == [first.id, second.id]
        assert s3.objects == {}

    def test_delete_many_reports_failures(self, s3):
        s3.failing_keys.add("locked.png")
        store = S3TextureStore(client=s3, bucket_name="gfx-textures", region="eu-west-1")
        assert store.delete_many(["a.png", "locked.png", ""]) == ["locked.png"]
        assert s3.delete_calls == 1
