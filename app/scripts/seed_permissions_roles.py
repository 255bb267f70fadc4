"""
Sync the permissions, roles and role_permissions tables with PERMISSION_MATRIX.

Usage:
    python -m app.scripts.seed_permissions_roles [--dry-run]

Rows are matched by name, so running it again only applies the difference.
Role permissions that are no longer in the matrix are revoked.
"""

import argparse
import logging
import sys
from typing import Dict, List

from supabase import Client

from app.config.permissions_config import PERMISSION_MATRIX
from app.database.supabase_client import get_service_supabase

logger = logging.getLogger(__name__)


def _ids_by_name(supabase: Client, table: str) -> Dict[str, str]:
    result = supabase.table(table).select("id, name").execute()
    return {row["name"]: row["id"] for row in result.data or []}


def sync_permissions(supabase: Client, permissions: List[Dict], dry_run: bool = False) -> Dict[str, str]:
    """Create missing permissions and refresh descriptions. Returns name -> id."""
    existing = _ids_by_name(supabase, "permissions")
    created = 0
    for perm in permissions:
        fields = {"resource": perm["resource"], "action": perm["action"], "description": perm["description"]}
        if perm["name"] in existing:
            if not dry_run:
                supabase.table("permissions").update(fields).eq("name", perm["name"]).execute()
            continue
        created += 1
        if dry_run:
            logger.info(f"[dry-run] would create permission {perm['name']}")
            continue
        result = supabase.table("permissions").insert({"name": perm["name"], **fields}).execute()
        existing[perm["name"]] = result.data[0]["id"]
    logger.info(f"Permissions: {created} created, {len(permissions) - created} refreshed")
    return existing


def sync_roles(supabase: Client, roles: List[Dict], permission_ids: Dict[str, str], dry_run: bool = False) -> int:
    """Create missing roles and align each role's grants with the matrix. Returns the number of grant changes."""
    existing = _ids_by_name(supabase, "roles")
    changes = 0
    for role in roles:
        role_id = existing.get(role["name"])
        if role_id is None:
            if dry_run:
                logger.info(f"[dry-run] would create role {role['name']} with {len(role['permissions'])} permissions")
                changes += len(role["permissions"])
                continue
            result = supabase.table("roles").insert(
                {"name": role["name"], "description": role["description"]}
            ).execute()
            role_id = result.data[0]["id"]
        elif not dry_run:
            supabase.table("roles").update({"description": role["description"]}).eq("id", role_id).execute()
        changes += _sync_role_grants(supabase, role_id, role, permission_ids, dry_run)
    return changes


def _sync_role_grants(
    supabase: Client, role_id: str, role: Dict, permission_ids: Dict[str, str], dry_run: bool
) -> int:
    wanted = {permission_ids[name] for name in role["permissions"] if name in permission_ids}
    missing = [name for name in role["permissions"] if name not in permission_ids]
    if missing:
        logger.warning(f"Role {role['name']} references unknown permissions: {missing}")

    current_result = supabase.table("role_permissions").select("permission_id").eq("role_id", role_id).execute()
    current = {row["permission_id"] for row in current_result.data or []}
    to_add = sorted(wanted - current)
    to_remove = sorted(current - wanted)

    if dry_run:
        if to_add or to_remove:
            logger.info(f"[dry-run] role {role['name']}: +{len(to_add)} -{len(to_remove)} grants")
        return len(to_add) + len(to_remove)

    if to_add:
        supabase.table("role_permissions").insert(
            [{"role_id": role_id, "permission_id": pid} for pid in to_add]
        ).execute()
    if to_remove:
        supabase.table("role_permissions").delete().eq("role_id", role_id).in_("permission_id", to_remove).execute()
    if to_add or to_remove:
        logger.info(f"Role {role['name']}: granted {len(to_add)}, revoked {len(to_remove)}")
    return len(to_add) + len(to_remove)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Sync permissions and roles with the permission matrix")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing them")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    try:
        supabase = get_service_supabase()
        permission_ids = sync_permissions(supabase, PERMISSION_MATRIX["permissions"], dry_run=args.dry_run)
        changes = sync_roles(supabase, PERMISSION_MATRIX["roles"], permission_ids, dry_run=args.dry_run)
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        return 1
    logger.info(f"Seeding completed: {len(PERMISSION_MATRIX['roles'])} roles, {changes} grant changes")
    return 0


if __name__ == "__main__":
    sys.exit(main())
