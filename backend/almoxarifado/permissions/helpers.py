# Overview: Lookups over the static permission catalog.

from .definitions import PERMISSION_DEFINITIONS


# code -> {"code", "name", "description", "category"}, in definition order
PERMISSIONS_BY_CODE = {
    code: {"code": code, "name": name, "description": description, "category": category}
    for code, name, description, category in PERMISSION_DEFINITIONS
}


def get_all_permission_codes() -> list[str]:
    return list(PERMISSIONS_BY_CODE)


def get_permissions_by_category(category: str) -> list[dict]:
    """Definitions in one category, in catalog order. Unknown categories give []."""
    return [
        dict(definition)
        for definition in PERMISSIONS_BY_CODE.values()
        if definition["category"] == category
    ]


def get_permission_definition(code: str) -> dict | None:
    definition = PERMISSIONS_BY_CODE.get(code)
    return dict(definition) if definition is not None else None


def validate_permission_code(code: str) -> bool:
    return code in PERMISSIONS_BY_CODE
