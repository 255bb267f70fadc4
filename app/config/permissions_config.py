"""
Permissions and Roles Configuration
This config defines the permission matrix for all modules and their associated roles.
Used by seed scripts and nightly jobs to populate/update roles and permissions.
"""

# Define modules and their actions
MODULES = {
    "data_sources": {
        "resource": "data_sources",
        "actions": ["create", "read", "update", "delete", "sync", "test"],
        "description": "Data source (API, RSS, database, file) integrations"
    },
    "templates": {
        "resource": "templates",
        "actions": ["create", "read", "update", "delete"],
        "description": "Graphics templates, elements and data bindings"
    },
    "textures": {
        "resource": "textures",
        "actions": ["create", "read", "update", "delete"],
        "description": "Organization texture and media library"
    },
    "playout": {
        "resource": "playout",
        "actions": ["read", "control"],
        "description": "On-air layer playback"
    },
    "ai_images": {
        "resource": "ai_images",
        "actions": ["generate"],
        "description": "AI image generation"
    }
}


# Role definitions per module. A role only receives the actions its module defines.
ROLE_TYPES = {
    "ADMIN": {
        "permissions": "*",
        "description": "Full administrative access to"
    },
    "OPERATOR": {
        "permissions": ["read", "sync", "control", "generate"],
        "description": "Day-to-day operation of"
    },
    "VIEWER": {
        "permissions": ["read"],
        "description": "Read-only access to"
    }
}

# Always seeded when they grant anything; other types are skipped when they duplicate one
BOUNDARY_ROLE_TYPES = ("ADMIN", "VIEWER")

# Descriptions for actions beyond plain CRUD
MODULE_SPECIFIC_PERMISSIONS = {
    "data_sources": {
        "sync": "Trigger and reset data source syncs",
        "test": "Test connections, queries and sync configurations"
    },
    "playout": {
        "control": "Play templates in, out and switch them on air"
    },
    "ai_images": {
        "generate": "Generate and edit images with the AI provider"
    }
}


def _permission_description(module_name: str, action: str) -> str:
    specific = MODULE_SPECIFIC_PERMISSIONS.get(module_name, {})
    return specific.get(action, f"{action.capitalize()} {module_name.replace('_', ' ')}")


def get_permission_matrix():
    """
    Build {"permissions": [...], "roles": [...]} from MODULES and ROLE_TYPES.

    Permissions are named "<resource>:<action>", roles "<resource>_<type>" in
    lower case. Role types that would grant nothing for a module are skipped,
    as are intermediate types whose grants duplicate another type.
    """
    permissions = []
    roles = []

    for module_name, module_config in MODULES.items():
        resource = module_config["resource"]
        actions = module_config["actions"]
        permissions.extend(
            {
                "name": f"{resource}:{action}",
                "resource": resource,
                "action": action,
                "description": _permission_description(module_name, action),
            }
            for action in actions
        )

        grants_by_type = {}
        for role_type, role_config in ROLE_TYPES.items():
            allowed = actions if role_config["permissions"] == "*" else [
                a for a in actions if a in role_config["permissions"]
            ]
            grants_by_type[role_type] = tuple(sorted(f"{resource}:{a}" for a in allowed))

        for role_type, grants in grants_by_type.items():
            if not grants:
                continue
            if role_type not in BOUNDARY_ROLE_TYPES and any(
                grants == other for other_type, other in grants_by_type.items() if other_type != role_type
            ):
                continue
            role_config = ROLE_TYPES[role_type]
            roles.append({
                "name": f"{resource}_{role_type.lower()}",
                "description": f"{role_config['description']} {module_config['description'].lower()}",
                "permissions": list(grants),
            })

    return {"permissions": permissions, "roles": roles}


PERMISSION_MATRIX = get_permission_matrix()
