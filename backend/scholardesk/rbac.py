from scholardesk.models import UserRole


# Permission mapping for each role
ROLE_PERMISSIONS = {
    UserRole.ADMIN: {
        "full_access": True,
        "manage_lifecycle": True,
        "manage_team": True,
        "respond_team_requests": True,
        "set_progress": True,
        "view_all": True,
    },
    UserRole.DEVELOPER: {
        "work_on_assignment": True,
        "sync_workspace": True,
    },
    UserRole.WORKER: {
        "work_on_assignment": True,
        "sync_workspace": True,
    },
}


def has_permission(user_role, permission: str) -> bool:
    """Check if a role has a specific permission"""
    perms = ROLE_PERMISSIONS.get(user_role, {})
    if perms.get("full_access"):
        return True
    return perms.get(permission, False)


def is_admin(actor) -> bool:
    return actor.role == UserRole.ADMIN


def is_worker(actor) -> bool:
    return has_permission(actor.role, "work_on_assignment") and actor.role != UserRole.ADMIN


def can_view_assignment(actor, assignment) -> bool:
    """Admins see everything, clients their own, workers what they are actively assigned to."""
    if has_permission(actor.role, "view_all"):
        return True
    if actor.role == UserRole.CLIENT:
        return assignment.client_id == actor.id
    if is_worker(actor):
        return assignment.is_assigned(actor.id)
    return False
