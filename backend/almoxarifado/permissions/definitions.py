# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- MATERIALS --

MATERIAL_PERMISSIONS = [
    (
        "VIEW_MATERIALS",
        "View Materials",
        "View materials and their current quantities",
        PermissionCategory.MATERIALS,
    ),
    (
        "MANAGE_MATERIALS",
        "Manage Materials",
        "Create, edit and delete material master data",
        PermissionCategory.MATERIALS,
    ),
    (
        "BULK_IMPORT",
        "Bulk Import",
        "Load stock in bulk from a CSV, JSON or spreadsheet file",
        PermissionCategory.MATERIALS,
    ),
]


# -- MOVEMENTS --

MOVEMENT_PERMISSIONS = [
    (
        "VIEW_MOVEMENTS",
        "View Movements",
        "View the full movement history and pending queue",
        PermissionCategory.MOVEMENTS,
    ),
    (
        "VIEW_OWN_MOVEMENTS",
        "View Own Movements",
        "View movements requested by the current user",
        PermissionCategory.MOVEMENTS,
    ),
    (
        "REQUEST_WITHDRAWAL",
        "Request Withdrawal",
        "Create pending outbound movements for approval",
        PermissionCategory.MOVEMENTS,
    ),
    (
        "MANAGE_STOCK",
        "Manage Stock",
        "Record direct inbound and adjustment movements",
        PermissionCategory.MOVEMENTS,
    ),
    (
        "APPROVE_MOVEMENTS",
        "Approve Movements",
        "Approve or reject pending movements requested by other users",
        PermissionCategory.MOVEMENTS,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "VIEW_REPORTS",
        "View Reports",
        "View dashboards and export CSV reports",
        PermissionCategory.REPORTS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create users, change roles and reset passwords",
        PermissionCategory.USERS,
    ),
]


PERMISSION_DEFINITIONS = (
    MATERIAL_PERMISSIONS
    + MOVEMENT_PERMISSIONS
    + REPORT_PERMISSIONS
    + USER_PERMISSIONS
)
