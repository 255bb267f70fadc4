# Supabase tables: templates, elements, bindings, animations
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

templates
- id: uuid (primary key)
- name: text (not null)
- description: text (nullable)
- organization_id: uuid (not null)
- project_id: uuid (nullable)
- layer_id: uuid (nullable) - broadcast layer the template plays on
- tags: text[] (default: '{}')
- thumbnail_url: text (nullable)
- width, height: integer (nullable)
- enabled, locked, archived: boolean
- version: integer (default: 1)
- sort_order: integer (default: 0)
- created_by: uuid (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

elements
- id: uuid (primary key)
- template_id: uuid (foreign key to templates.id, not null)
- name: text (not null)
- element_id: text (nullable) - DOM id
- element_type: text (not null) - text | image | shape | ...
- parent_element_id: uuid (nullable, same template)
- sort_order, z_index: integer
- position_x, position_y, width, height, rotation, opacity: numeric
- content: jsonb - e.g. {"text": "..."} or {"src": "..."}
- styles: jsonb
- visible, locked: boolean

bindings
- id: uuid (primary key)
- template_id: uuid (foreign key to templates.id, not null)
- element_id: uuid (foreign key to elements.id, not null) - must belong to template_id
- binding_key: text (not null) - field path such as "player.name" or "items[0].score"
- target_property: text (not null) - e.g. "content.text", "styles.color"
- binding_type: text - text | image | number | color | boolean
- default_value: text (nullable)
- formatter: text (nullable) - number | currency | percentage | uppercase | lowercase | capitalize | truncate
- formatter_options: jsonb (nullable) - camelCase keys, only non-default values stored
- required: boolean

animations
- id: uuid (primary key)
- template_id: uuid (not null)
- element_id: uuid (not null)
- phase: text - in | loop | out
- delay, duration: integer (milliseconds)
- iterations: integer
- direction, easing: text
- preset_id: uuid (nullable)
- created_at: timestamp (default: now())
"""
