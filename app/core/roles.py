# app/core/roles.py
"""
Access-control roles and the permissions attached to them.

Roles are a closed enum. Raw strings read from the identity store are
parsed exactly once, by `parse_role`, and never passed further.
"""

import logging
import re
from enum import Enum

logger = logging.getLogger(__name__)


class Role(str, Enum):
    CUSTOMER = "customer"
    SUBSCRIBER = "subscriber"


DEFAULT_ROLE = Role.CUSTOMER

# subscriber includes every customer permission
ROLE_HIERARCHY: dict[Role, int] = {
    Role.CUSTOMER: 1,
    Role.SUBSCRIBER: 2,
}


class Permission(str, Enum):
    # Shopping
    PURCHASE_PRODUCTS = "purchase:products"
    VIEW_CART = "view:cart"

    # Content
    ACCESS_FREE_CONTENT = "access:free_content"
    ACCESS_PREMIUM_CONTENT = "access:premium_content"

    # Video library
    ACCESS_VIDEO_LIBRARY = "access:video_library"
    STREAM_VIDEOS = "stream:videos"

    # Academy
    ACCESS_ACADEMY = "access:academy"
    ACCESS_COURSES = "access:courses"

    # Resource libraries
    ACCESS_COLOR_LIBRARY = "access:color_library"
    ACCESS_RECIPE_LIBRARY = "access:recipe_library"
    ACCESS_CATEGORY_CONTENT = "access:category_content"

    # Account
    MANAGE_PROFILE = "manage:profile"
    VIEW_ORDER_HISTORY = "view:order_history"


_CUSTOMER_PERMISSIONS = frozenset(
    {
        Permission.PURCHASE_PRODUCTS,
        Permission.VIEW_CART,
        Permission.ACCESS_FREE_CONTENT,
        Permission.MANAGE_PROFILE,
        Permission.VIEW_ORDER_HISTORY,
    }
)

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.CUSTOMER: _CUSTOMER_PERMISSIONS,
    Role.SUBSCRIBER: _CUSTOMER_PERMISSIONS
    | {
        Permission.ACCESS_PREMIUM_CONTENT,
        Permission.ACCESS_VIDEO_LIBRARY,
        Permission.STREAM_VIDEOS,
        Permission.ACCESS_ACADEMY,
        Permission.ACCESS_COURSES,
        Permission.ACCESS_COLOR_LIBRARY,
        Permission.ACCESS_RECIPE_LIBRARY,
        Permission.ACCESS_CATEGORY_CONTENT,
    },
}

_DISPLAY_NAMES = {
    Role.CUSTOMER: "Customer",
    Role.SUBSCRIBER: "Subscriber",
}

_DESCRIPTIONS = {
    Role.CUSTOMER: "Access to shop and purchase products",
    Role.SUBSCRIBER: "Full access to all content, courses, and premium features",
}

# Paths whose content needs a subscriber. "/academy-details" is public.
SUBSCRIBER_ROUTES = [
    re.compile(r"^/video-library(/.*)?$"),
    re.compile(r"^/academy(/.*)?$"),
    re.compile(r"^/colors(/.*)?$"),
    re.compile(r"^/recipes/[^/]+/?$"),
]

# Paths that only need a signed-in user.
LOGIN_ROUTES = [
    re.compile(r"^/my-account(/.*)?$"),
    re.compile(r"^/dashboard(/.*)?$"),
    re.compile(r"^/profile(/.*)?$"),
]


def parse_role(raw: object, user_id: str | None = None) -> Role:
    """
    Validate a role value read from the identity store.

    Missing values silently default to customer. Anything outside the
    enum (e.g. "admin", "guest") also defaults to customer, with a
    warning so the record can be fixed.
    """
    if raw is None or raw == "":
        return DEFAULT_ROLE

    if isinstance(raw, str):
        try:
            return Role(raw.strip().lower())
        except ValueError:
            pass

    logger.warning(
        "User %s has invalid role %r; treating as %s",
        user_id or "<unknown>",
        raw,
        DEFAULT_ROLE.value,
    )
    return DEFAULT_ROLE


def has_minimum_role(role: Role, minimum: Role) -> bool:
    return ROLE_HIERARCHY[role] >= ROLE_HIERARCHY[minimum]


def has_permission(role: Role, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS[role]


def role_display_name(role: Role) -> str:
    return _DISPLAY_NAMES[role]


def role_description(role: Role) -> str:
    return _DESCRIPTIONS[role]


def required_role_for_path(path: str) -> Role | None:
    """
    Minimum role for a frontend path.

    Returns None for public paths, Role.CUSTOMER for login-only paths
    and Role.SUBSCRIBER for premium content.
    """
    if any(pattern.match(path) for pattern in SUBSCRIBER_ROUTES):
        return Role.SUBSCRIBER
    if any(pattern.match(path) for pattern in LOGIN_ROUTES):
        return Role.CUSTOMER
    return None
