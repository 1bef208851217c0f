"""Delegated Graph authentication with a persistent token cache."""

from mailcase.auth.token_cache import (
    DELEGATED_SCOPES,
    get_persistent_device_code_credential,
)

__all__ = ["DELEGATED_SCOPES", "get_persistent_device_code_credential"]
