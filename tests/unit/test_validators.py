"""Unit tests for value validators, permissions and credential helpers."""

from datetime import date, timedelta

import pytest

from transitdesk.src import argon2, exceptions, jwt, validators
from transitdesk.src.enums import Permission, UserRole
from transitdesk.src.functions import sortedPoints, toSeconds
from transitdesk.src.permissions import hasPermission


class TestStopTimes:
    """Tests for GTFS time handling."""

    def test_to_seconds_past_midnight(self):
        """Hours beyond 23 are valid GTFS times."""
        assert toSeconds("25:35:00") == 92100
        assert toSeconds("9:00:00") < toSeconds("10:00:00")

    def test_departure_after_arrival(self):
        assert validators.stopTimes("08:00:00", "08:01:00")

    def test_departure_before_arrival(self):
        with pytest.raises(exceptions.InvalidValue):
            validators.stopTimes("08:00:00", "07:59:00")

    def test_departure_equal_to_arrival(self):
        with pytest.raises(exceptions.InvalidValue):
            validators.stopTimes("08:00:00", "08:00:00")


class TestCalendarWindow:
    def test_valid_window(self):
        assert validators.calendarWindow(date(2025, 1, 1), date(2025, 12, 31))

    def test_end_not_after_start(self):
        with pytest.raises(exceptions.InvalidValue):
            validators.calendarWindow(date(2025, 1, 1), date(2025, 1, 1))


class TestDriverCount:
    @pytest.mark.parametrize("drivers", [["D1"], ["D1", "D2"]])
    def test_accepted(self, drivers):
        assert validators.driverCount(drivers)

    @pytest.mark.parametrize("drivers", [[], ["D1", "D2", "D3"]])
    def test_rejected(self, drivers):
        with pytest.raises(exceptions.InvalidDriverCount) as error:
            validators.driverCount(drivers)
        assert error.value.status_code == 400


class TestPermissions:
    def test_superadmin_only_capabilities(self):
        assert hasPermission(UserRole.SUPERADMIN.value, Permission.CREATE_AGENCY)
        assert not hasPermission(UserRole.ADMIN.value, Permission.CREATE_AGENCY)
        assert not hasPermission(UserRole.ADMIN.value, Permission.ASSIGN_AGENCY_ADMIN)

    def test_admin_manages_transit_data(self):
        assert hasPermission(UserRole.ADMIN.value, Permission.MANAGE_TRIP)
        assert hasPermission(UserRole.ADMIN.value, Permission.REPLY_MESSAGE)

    def test_parent_has_no_capability(self):
        assert not hasPermission(UserRole.PARENT.value, Permission.REPLY_MESSAGE)

    def test_unknown_role(self):
        assert not hasPermission("driver", Permission.LIST_USER)

    def test_agency_fields_for_admin(self):
        admin = type("Caller", (), {"role": UserRole.ADMIN.value})()
        assert validators.agencyUpdateFields(admin, {"email", "routes"})
        with pytest.raises(exceptions.NoPermission):
            validators.agencyUpdateFields(admin, {"name"})


class TestCredentials:
    def test_password_hash(self):
        passwordHash = argon2.makePassword("Password@123")
        assert passwordHash != "Password@123"
        assert argon2.checkPassword("Password@123", passwordHash)
        assert not argon2.checkPassword("password@123", passwordHash)
        assert not argon2.needsRehash(passwordHash)

    def test_corrupted_hash(self):
        assert not argon2.checkPassword("Password@123", "not-a-hash")

    def test_token_claims(self):
        token = jwt.createAccessToken({"userId": 7, "role": "admin"})
        assert jwt.verifyAccessToken(token)["userId"] == 7

    def test_expired_token(self):
        token = jwt.createAccessToken({"userId": 7}, timedelta(seconds=-1))
        with pytest.raises(exceptions.InvalidToken):
            jwt.verifyAccessToken(token)

    def test_token_without_user(self):
        token = jwt.createAccessToken({"role": "admin"})
        with pytest.raises(exceptions.InvalidToken):
            jwt.verifyAccessToken(token)


def test_shape_points_ordered():
    points = [
        {"shape_pt_lat": 1.0, "shape_pt_lon": 1.0, "shape_pt_sequence": 2},
        {"shape_pt_lat": 0.0, "shape_pt_lon": 0.0, "shape_pt_sequence": 1},
    ]
    assert [x["shape_pt_sequence"] for x in sortedPoints(points)] == [1, 2]
