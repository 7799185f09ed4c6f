# tests/test_roles.py
import logging

import pytest

from app.core.roles import (
    Permission,
    Role,
    has_minimum_role,
    has_permission,
    parse_role,
    required_role_for_path,
    role_display_name,
)
from app.schemas.user import UserRecord


@pytest.mark.parametrize("raw", ["admin", "guest", "SUPERUSER", 42, ["subscriber"]])
def test_invalid_role_reads_as_customer_with_warning(raw, caplog):
    with caplog.at_level(logging.WARNING, logger="app.core.roles"):
        assert parse_role(raw, "user_1") is Role.CUSTOMER
    assert "invalid role" in caplog.text


@pytest.mark.parametrize("raw", [None, ""])
def test_missing_role_defaults_silently(raw, caplog):
    with caplog.at_level(logging.WARNING, logger="app.core.roles"):
        assert parse_role(raw) is Role.CUSTOMER
    assert caplog.text == ""


def test_role_parsing_is_case_and_whitespace_insensitive():
    assert parse_role(" Subscriber ") is Role.SUBSCRIBER
    assert parse_role("CUSTOMER") is Role.CUSTOMER


def test_user_record_with_admin_role_resolves_to_customer():
    user = UserRecord(id="user_1", email="a@example.com", stored_role="admin")
    assert user.role is Role.CUSTOMER


def test_hierarchy_and_permissions():
    assert has_minimum_role(Role.SUBSCRIBER, Role.CUSTOMER)
    assert not has_minimum_role(Role.CUSTOMER, Role.SUBSCRIBER)
    assert has_permission(Role.SUBSCRIBER, Permission.PURCHASE_PRODUCTS)
    assert has_permission(Role.SUBSCRIBER, Permission.STREAM_VIDEOS)
    assert not has_permission(Role.CUSTOMER, Permission.ACCESS_ACADEMY)
    assert role_display_name(Role.SUBSCRIBER) == "Subscriber"


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/video-library", Role.SUBSCRIBER),
        ("/video-library/piping-basics", Role.SUBSCRIBER),
        ("/academy", Role.SUBSCRIBER),
        ("/academy/lesson-3", Role.SUBSCRIBER),
        ("/academy-details", None),
        ("/colors/pastels", Role.SUBSCRIBER),
        ("/recipes/vanilla-sponge", Role.SUBSCRIBER),
        ("/recipes", None),
        ("/my-account/orders", Role.CUSTOMER),
        ("/dashboard", Role.CUSTOMER),
        ("/shop", None),
    ],
)
def test_required_role_for_path(path, expected):
    assert required_role_for_path(path) == expected
