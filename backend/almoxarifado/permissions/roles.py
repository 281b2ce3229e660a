# Overview: Static role -> permission mapping.
# Roles are fixed (admin, viewer, withdrawer); there is no per-user override.

from .helpers import get_all_permission_codes


DEFAULT_ROLE_PERMISSIONS = {
    "admin": frozenset(get_all_permission_codes()),
    "viewer": frozenset({
        "VIEW_MATERIALS",
        "VIEW_MOVEMENTS",
        "VIEW_REPORTS",
    }),
    "withdrawer": frozenset({
        "VIEW_MATERIALS",
        "VIEW_OWN_MOVEMENTS",
        "REQUEST_WITHDRAWAL",
    }),
}
