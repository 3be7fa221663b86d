"""
Secrets for LitVerse from HashiCorp Vault (KV v2, AppRole login).

Every read is confined to the 'litverse/' mount path. Values are fetched
once per process and cached; a missing path or field is fatal for required
secrets, and main.py treats it as "channel not configured" for optional ones.

Environment:
    VAULT_ADDR, VAULT_ROLE_ID, VAULT_SECRET_ID (required)
    VAULT_NAMESPACE (optional)
"""

import logging
import os

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized, VaultError as HvacError

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "litverse"

_vault_client_instance: "VaultClient | None" = None
_secret_cache: dict[str, str] = {}


class VaultError(Exception):
    """Vault login or secret read failed."""


class VaultClient:
    """AppRole-authenticated KV v2 reader scoped to litverse/."""

    def __init__(self, vault_addr: str | None = None, vault_namespace: str | None = None):
        """
        Raises:
            ValueError: VAULT_ADDR or the AppRole credentials are missing
            VaultError: AppRole login rejected
        """
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")

        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")
        if not role_id or not secret_id:
            raise ValueError("VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required")

        client_kwargs = {"url": self.vault_addr}
        namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        if namespace:
            client_kwargs["namespace"] = namespace
        self.client = hvac.Client(**client_kwargs)

        try:
            login = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except HvacError as e:
            logger.error(f"AppRole authentication failed: {e}")
            raise VaultError(f"AppRole authentication failed: {e}")
        self.client.token = login["auth"]["client_token"]

        if not self.client.is_authenticated():
            raise VaultError("Vault authentication failed")
        logger.info(f"Authenticated to Vault at {self.vault_addr}")

    def get_secret(self, path: str, field: str) -> str:
        """
        One field of litverse/<path>.

        Raises:
            VaultError: path missing or not readable with this role
            KeyError: field not present in the secret
        """
        full_path = f"{_SECRET_PREFIX}/{path}"
        try:
            secret = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )["data"]["data"]
        except InvalidPath:
            raise VaultError(f"Secret path '{full_path}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            raise VaultError(f"Access denied to secret '{full_path}': {e}")

        if field not in secret:
            raise KeyError(
                f"Field '{field}' not found in secret '{full_path}'. "
                f"Available: {', '.join(secret)}"
            )
        return secret[field]


def _client() -> VaultClient:
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


def _read(path: str, *fields: str) -> dict[str, str]:
    values = {}
    for field in fields:
        cache_key = f"{_SECRET_PREFIX}/{path}/{field}"
        if cache_key not in _secret_cache:
            _secret_cache[cache_key] = _client().get_secret(path, field)
        values[field] = _secret_cache[cache_key]
    return values


def get_database_url() -> str:
    return _read("database", "url")["url"]


def get_valkey_url() -> str:
    return _read("valkey", "url")["url"]


def get_jwt_secret() -> str:
    """HS256 signing key for bearer tokens."""
    return _read("jwt", "secret_key")["secret_key"]


def get_email_config() -> dict[str, str]:
    """gateway_url, api_key, hmac_secret for the email gateway."""
    return _read("email", "gateway_url", "api_key", "hmac_secret")


def get_sms_config() -> dict[str, str]:
    """gateway_url, api_key, hmac_secret for the SMS gateway."""
    return _read("sms", "gateway_url", "api_key", "hmac_secret")


def get_admin_config() -> dict[str, str]:
    """email and password of the bootstrap admin."""
    return _read("admin", "email", "password")


def get_google_config() -> dict[str, str]:
    return _read("google", "client_id")


def get_facebook_config() -> dict[str, str]:
    return _read("facebook", "app_id", "app_secret")
