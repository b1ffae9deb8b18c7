"""
Feature flags for payrecon
"""
import os

_TRUTHY = {"1", "true", "yes", "on"}


def flag(name: str, default: bool = False) -> bool:
    """
    Read a boolean feature flag from the environment.
    Unset flags fall back to the default value.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY
