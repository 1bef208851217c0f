"""Tests for the file-backed MSAL token cache and the delegated credential."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mailcase.auth.token_cache import DELEGATED_SCOPES, MSALDelegatedCredential, load_cache, save_cache


class FakeApp:
    def __init__(self, silent_result=None, device_result=None):
        self.silent_result = silent_result
        self.device_result = device_result or {}
        self.device_flows = 0
        self.scopes = None

    def get_accounts(self):
        return [{"username": "lawyer@firm-a.example"}]

    def acquire_token_silent(self, scopes, account=None):
        self.scopes = scopes
        return self.silent_result

    def initiate_device_flow(self, scopes):
        self.device_flows += 1
        return {"user_code": "ABC", "message": "Go to https://microsoft.com/devicelogin", "verification_uri": "x"}

    def acquire_token_by_device_flow(self, flow):
        return self.device_result


def _credential(tmp_path, app):
    # Skips PublicClientApplication, which contacts the authority on construction
    credential = MSALDelegatedCredential.__new__(MSALDelegatedCredential)
    credential._cache_path = tmp_path / "cache.json"
    credential._cache = load_cache(credential._cache_path)
    credential._app = app
    return credential


def test_missing_and_unreadable_cache_files(tmp_path):
    missing = load_cache(tmp_path / "none.json")
    assert not missing.has_state_changed
    save_cache(missing, tmp_path / "none.json")
    assert not (tmp_path / "none.json").exists()

    broken = tmp_path / "broken.json"
    broken.write_text("not json", encoding="utf-8")
    assert load_cache(broken) is not None


def test_silent_token_is_used_first(tmp_path):
    credential = _credential(tmp_path, FakeApp(silent_result={"access_token": "tok", "expires_in": 3600}))
    token = credential.get_token()
    assert token.token == "tok"
    assert credential._app.scopes == DELEGATED_SCOPES
    assert credential._app.device_flows == 0


def test_device_flow_failure_raises(tmp_path, capsys):
    credential = _credential(tmp_path, FakeApp(silent_result=None, device_result={"error": "authorization_declined"}))
    with pytest.raises(RuntimeError, match="authorization_declined"):
        credential.get_token("https://graph.microsoft.com/Mail.Read")
    assert "devicelogin" in capsys.readouterr().out
