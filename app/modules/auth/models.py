# Supabase Auth users
# Accounts live in Supabase Auth; this file documents the metadata the service reads.

"""
auth.users metadata used by the backend:
- app_metadata.type: "super_user" grants every permission (set server-side only)
- app_metadata.organization_id: organization the user works in (preferred)
- user_metadata.organization_id: fallback written at registration
- user_metadata.full_name: display name

Related public tables:
- user_roles: user_id uuid, role_id uuid (fk roles.id)
- roles / permissions / role_permissions: populated by app/scripts/seed_permissions_roles.py
"""
