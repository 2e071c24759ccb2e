"""Tests for KeychainSettingsSource integration in config.py."""

import os
from unittest.mock import patch

from config import KeychainSettingsSource, Settings
from services.credential_manager import CREDENTIAL_KEYS

# Environment variables that would interfere with Settings defaults if
# set in the test runner's shell.  We clear them for isolation.
_ENV_VARS_TO_CLEAR = {
    "DATABASE_URL",
    "REDIS_URL",
    "ENVIRONMENT",
    "LOG_LEVEL",
    *CREDENTIAL_KEYS,
}


def _clean_env():
    """Return a copy of ``os.environ`` without the variables Settings reads."""
    return {k: v for k, v in os.environ.items() if k not in _ENV_VARS_TO_CLEAR}


class TestKeychainSettingsSource:
    def test_keychain_value_overrides_default(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: "from-keychain" if key == "PLAID_SECRET" else None
            s = Settings(_env_file=None)
            assert s.PLAID_SECRET == "from-keychain"
            assert s.PLAID_CLIENT_ID == ""

    def test_init_value_overrides_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value="from-keychain"),
        ):
            s = Settings(_env_file=None, PLAID_CLIENT_ID="from-init")
            assert s.PLAID_CLIENT_ID == "from-init"

    def test_keychain_overrides_env_var(self):
        env = _clean_env()
        env["PLAID_CLIENT_ID"] = "from-env"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: "from-keychain" if key == "PLAID_CLIENT_ID" else None
            s = Settings(_env_file=None)
            assert s.PLAID_CLIENT_ID == "from-keychain"

    def test_non_credential_fields_skip_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.return_value = "should-not-be-used"
            s = Settings(_env_file=None)
            assert s.DATABASE_URL == "sqlite:///./bank_sync.db"
            assert s.REDIS_URL == "redis://localhost:6379/0"
            called_keys = {call.args[0] for call in mock_get.call_args_list}
            assert called_keys <= CREDENTIAL_KEYS

    def test_source_is_second_in_priority_chain(self):
        sources = Settings.settings_customise_sources(
            Settings,
            init_settings=object(),
            env_settings=object(),
            dotenv_settings=object(),
            file_secret_settings=object(),
        )
        source_types = [type(s) for s in sources]
        assert source_types.index(KeychainSettingsSource) == 1
