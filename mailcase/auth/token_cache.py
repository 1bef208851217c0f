"""MSAL token cache for read-only delegated mailbox access. Tokens persist on disk and refresh silently."""

import time
from pathlib import Path
from typing import Any

from azure.core.credentials import AccessToken, TokenCredential
import msal

from mailcase.config import TOKEN_CACHE_PATH
from mailcase.utils.logger import get_logger

logger = get_logger("mailcase.auth")

# Ingestion only reads mail
DELEGATED_SCOPES = ["https://graph.microsoft.com/Mail.Read"]


def load_cache(path: Path = TOKEN_CACHE_PATH) -> msal.SerializableTokenCache:
    """SerializableTokenCache restored from `path`; an unreadable file starts an empty cache."""
    cache = msal.SerializableTokenCache()
    if path.exists():
        try:
            cache.deserialize(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("auth.token_cache_unreadable", path=str(path), error=str(e))
    return cache


def save_cache(cache: msal.SerializableTokenCache, path: Path = TOKEN_CACHE_PATH) -> None:
    if not cache.has_state_changed:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(cache.serialize(), encoding="utf-8")
    logger.debug("auth.token_cache_saved", path=str(path))


class MSALDelegatedCredential(TokenCredential):
    """TokenCredential over an MSAL public client with a file-backed cache.

    First run goes through the device code flow; later runs reuse the cached refresh token.
    """

    def __init__(self, tenant_id: str, client_id: str, cache_path: Path = TOKEN_CACHE_PATH):
        self._cache_path = cache_path
        self._cache = load_cache(cache_path)
        self._app = msal.PublicClientApplication(
            client_id=client_id,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
            token_cache=self._cache,
        )

    def _access_token(self, result: dict) -> AccessToken:
        save_cache(self._cache, self._cache_path)
        expires_on = int(time.time()) + int(result.get("expires_in", 0))
        return AccessToken(token=result["access_token"], expires_on=expires_on)

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        scopes_list = list(scopes) if scopes else DELEGATED_SCOPES
        accounts = self._app.get_accounts()
        account = accounts[0] if accounts else None

        result = self._app.acquire_token_silent(scopes_list, account=account)
        if result and "access_token" in result:
            return self._access_token(result)

        flow = self._app.initiate_device_flow(scopes=scopes_list)
        if "user_code" not in flow:
            raise RuntimeError(flow.get("error_description", "Failed to create device flow"))
        logger.warning("auth.device_code_required", verification_uri=flow.get("verification_uri"))
        print(flow["message"])
        result = self._app.acquire_token_by_device_flow(flow)
        if "access_token" not in result:
            raise RuntimeError(result.get("error_description", result.get("error", "Device flow failed")))
        return self._access_token(result)


def get_persistent_device_code_credential(
    tenant_id: str,
    client_id: str,
    cache_path: Path = TOKEN_CACHE_PATH,
) -> TokenCredential:
    return MSALDelegatedCredential(tenant_id=tenant_id, client_id=client_id, cache_path=cache_path)
