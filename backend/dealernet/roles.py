# Overview: Company role hierarchy (admin > manager > staff) and the manage/assign rules.

"""
Role Hierarchy

Every user of a company holds exactly one of three roles. The ranking is
strict: nobody manages a peer or a superior, and an actor may hand out its own
level or lower, never higher.

These functions are pure. They are used by the policy layer for administrative
endpoints and by the governance engine before any user mutation.
"""

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_STAFF = "staff"

ROLE_LEVELS = {
    ROLE_ADMIN: 3,
    ROLE_MANAGER: 2,
    ROLE_STAFF: 1,
}

# Highest first
ROLES = tuple(sorted(ROLE_LEVELS, key=ROLE_LEVELS.get, reverse=True))

ROLE_DESCRIPTIONS = {
    ROLE_ADMIN: "Full company access, manages managers and staff",
    ROLE_MANAGER: "Manages staff, reconciles payments",
    ROLE_STAFF: "Records payments and works orders",
}


def is_valid_role(role: str) -> bool:
    return role in ROLE_LEVELS


def role_level(role: str) -> int:
    """Return the rank of a role. Raises ValueError for unknown roles."""
    try:
        return ROLE_LEVELS[role]
    except KeyError:
        raise ValueError(f"Unknown role: {role!r}. Must be one of {list(ROLES)}") from None


def can_manage(actor_role: str, target_role: str) -> bool:
    """True when the actor strictly outranks the target."""
    return role_level(actor_role) > role_level(target_role)


def can_assign_role(actor_role: str, new_role: str) -> bool:
    """True when the new role is at or below the actor's own level."""
    return role_level(actor_role) >= role_level(new_role)


def assignable_roles(actor_role: str) -> list[dict]:
    """Roles an actor may hand out, highest first, for role pickers."""
    return [
        {"role": role, "level": ROLE_LEVELS[role], "description": ROLE_DESCRIPTIONS[role]}
        for role in ROLES
        if can_assign_role(actor_role, role)
    ]
