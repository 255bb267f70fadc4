# Supabase table: organization_textures
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- organization_id: uuid (not null)
- name: text (not null)
- file_name: text (not null) - original upload name
- file_url: text (not null) - public URL
- thumbnail_url: text (nullable)
- storage_path: text (not null) - "{organization_id}/{filename}" in the textures bucket, or s3://bucket/key
- media_type: text (not null) - 'image' | 'video'
- size: bigint (nullable) - bytes
- width, height: integer (nullable)
- duration: numeric (nullable) - seconds, videos only
- uploaded_by: uuid (nullable)
- tags: text[] (default: '{}')
- metadata: jsonb (nullable) - provenance of generated images: {"source": "ai", "prompt", "model"}
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Storage bucket: textures
- {organization_id}/{timestamp}-{random}-{name}.{ext}
- {organization_id}/thumbnails/{filename}.jpg
"""
