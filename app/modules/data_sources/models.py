# Supabase table: data_sources
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- name: text (not null)
- type: text (not null) - 'api' | 'rss' | 'database' | 'file'
- active: boolean (default: true)
- organization_id: uuid (not null)
- user_id: uuid (nullable) - last editor
- api_config: jsonb (nullable) - url, method, headers, auth_type, auth_config, data_path
- rss_config: jsonb (nullable) - url, feedType, maxItems
- database_config: jsonb (nullable) - dbType, connections{id: {...}}, queries{id: {mode, ...}}
- file_config: jsonb (nullable) - source, url|path, format, delimiter, hasHeaders,
  headerRowNumber, chunkMode, chunkSize, filterEnabled, filters[], filterLogic
- sync_config: jsonb (nullable) - enabled, interval, intervalUnit, targetBucketId, syncMode
- template_mapping: jsonb (nullable) - templateId, fieldMappings[{templateField, sourceColumn, rowIndex, combinedFields}]
- sync_status: text (default: 'idle') - idle | pending | running | success | error | scheduled | ready
- last_sync_at: timestamp (nullable)
- next_sync_at: timestamp (nullable)
- last_sync_count: integer (nullable)
- last_sync_error: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Edge functions invoked by name (bodies are JSON):
- sync-api-integration, sync-file-integration, sync-database-integration,
  sync-rss-integration: {dataSourceId, force} -> {itemsProcessed, message}
- test-sync-configuration, test-database-simple, test-database-parent-child: {config}
- test-database-connection: {type, host, port, database, user, password, schema}
- test-database-query: {mode, connection, sql, type}
"""
