"""
Role → permission table and the per-booking edit/delete checks.

Roles are issued elsewhere; this module only interprets them. A missing or
unknown role gets no permissions at all.
"""
from dataclasses import dataclass, fields
from typing import Optional


ROLES = ("pilot", "agency", "driver", "admin")


@dataclass(frozen=True)
class Permissions:
    can_manage_own_availability: bool = False
    can_manage_all_availability: bool = False
    can_view_all_bookings: bool = False
    can_create_bookings: bool = False
    can_edit_own_bookings: bool = False
    can_edit_all_bookings: bool = False
    can_delete_own_bookings: bool = False
    can_delete_all_bookings: bool = False
    can_manage_booking_requests: bool = False
    can_access_accounting: bool = False
    can_manage_roles: bool = False


NO_PERMISSIONS = Permissions()

ROLE_PERMISSIONS = {
    "pilot": Permissions(
        can_manage_own_availability=True,
        can_view_all_bookings=True,
        can_create_bookings=True,
        can_edit_own_bookings=True,
        can_delete_own_bookings=True,
        can_access_accounting=True,
    ),
    "agency": Permissions(
        can_view_all_bookings=True,
        can_create_bookings=True,
        can_edit_own_bookings=True,
        can_delete_own_bookings=True,
    ),
    "driver": Permissions(
        can_view_all_bookings=True,
        can_create_bookings=True,
        can_edit_own_bookings=True,
        can_edit_all_bookings=True,
        can_delete_own_bookings=True,
    ),
    "admin": Permissions(**{f.name: True for f in fields(Permissions)}),
}


@dataclass(frozen=True)
class Actor:
    uid: str
    name: str = ""
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        """Admins bypass the edit window and capacity limits."""
        return self.role == "admin"

    @property
    def permissions(self) -> Permissions:
        return permissions_for(self.role)


def permissions_for(role: Optional[str]) -> Permissions:
    return ROLE_PERMISSIONS.get(role, NO_PERMISSIONS)


def can_edit_booking(actor: Actor, creator_id: Optional[str]) -> bool:
    perms = actor.permissions
    if perms.can_edit_all_bookings:
        return True
    return perms.can_edit_own_bookings and creator_id == actor.uid


def can_delete_booking(actor: Actor, creator_id: Optional[str]) -> bool:
    perms = actor.permissions
    if perms.can_delete_all_bookings:
        return True
    return perms.can_delete_own_bookings and creator_id == actor.uid


def can_manage_availability(actor: Actor, pilot_uid: str) -> bool:
    perms = actor.permissions
    if perms.can_manage_all_availability:
        return True
    return perms.can_manage_own_availability and pilot_uid == actor.uid
