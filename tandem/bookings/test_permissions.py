"""
Role table and per-booking ownership checks.

  pytest tandem/bookings/test_permissions.py
"""
from tandem.bookings.permissions import (
    NO_PERMISSIONS, Actor, can_delete_booking, can_edit_booking,
    can_manage_availability, permissions_for,
)


def test_unknown_or_missing_role_has_nothing():
    assert permissions_for(None) == NO_PERMISSIONS
    assert permissions_for("customer") == NO_PERMISSIONS
    assert not Actor(uid="x").permissions.can_create_bookings


def test_admin_has_everything():
    perms = permissions_for("admin")
    assert all(vars(perms).values())


def test_agency_edits_only_its_own_bookings(agency):
    assert can_edit_booking(agency, agency.uid)
    assert not can_edit_booking(agency, "someone-else")
    assert not agency.permissions.can_access_accounting


def test_driver_edits_all_but_deletes_own(driver):
    assert can_edit_booking(driver, "someone-else")
    assert not can_delete_booking(driver, "someone-else")
    assert can_delete_booking(driver, driver.uid)


def test_admin_overrides_ownership(admin):
    assert can_edit_booking(admin, None)
    assert can_delete_booking(admin, "someone-else")
    assert can_manage_availability(admin, "p-anna")


def test_pilot_manages_only_own_availability(pilot):
    assert can_manage_availability(pilot, pilot.uid)
    assert not can_manage_availability(pilot, "p-anna")


def test_only_admin_is_admin(admin, driver):
    assert admin.is_admin
    assert not driver.is_admin
