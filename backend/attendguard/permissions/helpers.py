# Overview: Utility functions for permission lookups and validation.

from .definitions import PERMISSION_DEFINITIONS


def get_all_permission_codes() -> list[str]:
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_code(code: str) -> bool:
    """Check if a permission code is known (catches typos in decorators)."""
    return code in get_all_permission_codes()
