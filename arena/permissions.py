"""
Capability checks guarding mutating operations.

Each check is a small object answering ``allows(user)``; checks compose with
``|`` so a route can say ``IsOwner(tower) | IsCoLeader(tower)`` and evaluate
it through :func:`require` the same way as any single check.
"""
from .exceptions import ForbiddenError
from .models import TowerMember, TowerRole, UserRole


class Permission:
    def allows(self, user) -> bool:
        raise NotImplementedError

    def __or__(self, other: "Permission") -> "AnyOf":
        return AnyOf(self, other)


class AnyOf(Permission):
    def __init__(self, *checks: Permission):
        flat = []
        for check in checks:
            flat.extend(check.checks if isinstance(check, AnyOf) else [check])
        self.checks = flat

    def allows(self, user) -> bool:
        return any(check.allows(user) for check in self.checks)


class IsOwner(Permission):
    """The leader of a tower."""

    def __init__(self, tower):
        self.tower = tower

    def allows(self, user) -> bool:
        return user is not None and self.tower.leader_id == user.id


class IsCoLeader(Permission):
    """The tower's designated co-leader, or an approved CO_LEADER member."""

    def __init__(self, tower):
        self.tower = tower

    def allows(self, user) -> bool:
        if user is None:
            return False
        if self.tower.co_leader_id == user.id:
            return True
        return TowerMember.query.filter_by(
            tower_id=self.tower.id,
            user_id=user.id,
            role=TowerRole.CO_LEADER,
            approved=True,
        ).first() is not None


class IsOrganizer(Permission):
    def __init__(self, tournament):
        self.tournament = tournament

    def allows(self, user) -> bool:
        return user is not None and any(o.id == user.id for o in self.tournament.organizers)


class IsSuperAdmin(Permission):
    def allows(self, user) -> bool:
        return user is not None and user.role == UserRole.SUPER_ADMIN


def tower_admin(tower) -> Permission:
    return IsOwner(tower) | IsCoLeader(tower)


def require(user, permission: Permission, message: str = 'Forbidden'):
    """Raise ForbiddenError unless ``permission`` allows ``user``."""
    if not permission.allows(user):
        raise ForbiddenError(message)
