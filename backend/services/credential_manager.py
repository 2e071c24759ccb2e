"""Plaid API keys in the OS keychain.

``config.Settings`` asks this module for ``PLAID_CLIENT_ID`` and
``PLAID_SECRET`` before falling back to environment variables, so the
keys never have to sit in a ``.env`` file on a developer machine. On
servers without a keychain backend every lookup returns ``None`` and the
environment wins.
"""

import logging
from types import ModuleType

logger = logging.getLogger(__name__)

SERVICE_NAME = "bank-sync"

CREDENTIAL_KEYS: frozenset[str] = frozenset({"PLAID_CLIENT_ID", "PLAID_SECRET"})


def _keyring() -> ModuleType | None:
    # Imported per call: keyring is optional and tests swap it in sys.modules.
    try:
        import keyring
    except ImportError:
        return None
    return keyring


def get_credential(key: str) -> str | None:
    """Return the stored value for ``key``, or None when absent or unreadable."""
    keyring = _keyring()
    if keyring is None:
        return None
    try:
        return keyring.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("Keychain lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store a Plaid key in the keychain.

    Returns:
        ``True`` if stored. Unknown keys, blank values and a missing
        keychain backend all return ``False``.
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to store %s: not a provider credential", key)
        return False
    if not value or not value.strip():
        logger.warning("Refusing to store blank value for %s", key)
        return False

    keyring = _keyring()
    if keyring is None:
        logger.warning("keyring is not installed; set %s in the environment instead", key)
        return False
    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except Exception:
        logger.warning("Could not store %s in keychain", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def delete_credential(key: str) -> bool:
    """Remove a Plaid key from the keychain. Returns ``False`` if nothing was removed."""
    if key not in CREDENTIAL_KEYS:
        return False
    keyring = _keyring()
    if keyring is None:
        return False
    try:
        keyring.delete_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("No keychain entry removed for %s", key, exc_info=True)
        return False
    logger.info("Removed %s from keychain", key)
    return True
