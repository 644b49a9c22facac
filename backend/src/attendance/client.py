"""HTTP client for the ZKBioTime attendance server.

Authentication uses either a static token from configuration or a token
obtained from ``/api-token-auth/`` with username/password. Obtained tokens
are cached in Redis for ZKBIOTIME_TOKEN_CACHE_MINUTES (55 by default), so a
sync run across many pages and tenants logs in once per server and user.

Tenants may override the global connection in their settings:

    {"zkbiotime": {"base_url": "...", "username": "...",
                   "password": "<SecretBox payload>", "auth_type": "JWT"}}
"""

import hashlib
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

import httpx

from config import settings
from infrastructure.cache import cache_get_json, cache_set_json
from infrastructure.secret_box import decrypt_secret
from models.tenant import Tenant

logger = logging.getLogger(__name__)

TRANSACTIONS_PATH = "/iclock/api/transactions/"
TOKEN_PATH = "/api-token-auth/"


class ZkBioTimeError(RuntimeError):
    """Raised on missing configuration, HTTP failures and API errors."""


def password_context(tenant_id) -> str:
    """SecretBox context for a tenant's ZKBioTime password."""
    return f"zkbiotime:{tenant_id}"


@dataclass(frozen=True)
class ZkBioTimeConfig:
    base_url: Optional[str] = None
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    auth_type: str = "Token"
    timeout: int = 30
    verify_ssl: bool = True
    token_cache_minutes: int = 55

    @classmethod
    def from_settings(cls) -> "ZkBioTimeConfig":
        return cls(
            base_url=settings.ZKBIOTIME_BASE_URL,
            token=settings.ZKBIOTIME_TOKEN,
            username=settings.ZKBIOTIME_USERNAME,
            password=settings.ZKBIOTIME_PASSWORD,
            auth_type=settings.ZKBIOTIME_AUTH_TYPE,
            timeout=settings.ZKBIOTIME_TIMEOUT,
            verify_ssl=settings.ZKBIOTIME_VERIFY_SSL,
            token_cache_minutes=settings.ZKBIOTIME_TOKEN_CACHE_MINUTES,
        )

    @classmethod
    def for_tenant(cls, tenant: Tenant) -> "ZkBioTimeConfig":
        """Global configuration overlaid with the tenant's ``zkbiotime`` settings."""
        config = cls.from_settings()
        overrides = tenant.get_setting("zkbiotime", {}) or {}
        values: Dict[str, Any] = {}
        for key in ("base_url", "token", "username", "auth_type"):
            if overrides.get(key):
                values[key] = overrides[key]
        if overrides.get("password"):
            try:
                values["password"] = decrypt_secret(overrides["password"], context=password_context(tenant.id))
            except ValueError as e:
                raise ZkBioTimeError(f"ZKBioTime password for tenant {tenant.slug} cannot be decrypted: {e}")
        return replace(config, **values) if values else config


class ZkBioTimeClient:
    """Synchronous ZKBioTime API client.

    Example:
        client = ZkBioTimeClient(ZkBioTimeConfig.for_tenant(tenant))
        page = client.get_transactions({"page": 1, "page_size": 200})
    """

    def __init__(self, config: Optional[ZkBioTimeConfig] = None, transport: Optional[httpx.BaseTransport] = None):
        self.config = config or ZkBioTimeConfig.from_settings()
        self._transport = transport

    def get_transactions(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("GET", TRANSACTIONS_PATH, params)

    def _url(self, path: str) -> str:
        if not self.config.base_url:
            raise ZkBioTimeError("ZKBioTime base URL is not configured. Set ZKBIOTIME_BASE_URL.")
        return self.config.base_url.rstrip("/") + path

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.config.timeout,
            verify=self.config.verify_ssl,
            transport=self._transport,
        )

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = self.get_token()
        if token:
            headers["Authorization"] = self.format_auth_header(token)

        url = self._url(path)
        try:
            with self._client() as client:
                response = client.request(method, url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise ZkBioTimeError(f"ZKBioTime request failed: {e}")

        if not response.is_success:
            raise ZkBioTimeError(f"ZKBioTime request failed: {response.status_code} {response.text}")

        try:
            return response.json() or {}
        except ValueError:
            raise ZkBioTimeError("ZKBioTime returned a non-JSON response")

    def _token_cache_key(self) -> str:
        identity = f"{self.config.base_url}|{self.config.username}"
        return "zkbiotime:auth_token:" + hashlib.sha256(identity.encode()).hexdigest()[:16]

    def get_token(self) -> Optional[str]:
        """Configured token, else a cached or freshly requested one."""
        if self.config.token:
            return self.config.token

        if self.config.token_cache_minutes > 0:
            cached = cache_get_json(self._token_cache_key())
            if cached:
                return cached

        token = self.request_token()
        if self.config.token_cache_minutes > 0:
            cache_set_json(self._token_cache_key(), token, self.config.token_cache_minutes * 60)
        return token

    def request_token(self) -> str:
        """
        Log in with username/password.

        Raises:
            ZkBioTimeError: Missing credentials, failed login, or no token in
                the response (read from ``token``, ``data.token`` or ``access``)
        """
        if not self.config.username or not self.config.password:
            raise ZkBioTimeError(
                "ZKBioTime credentials are missing. Set ZKBIOTIME_USERNAME and ZKBIOTIME_PASSWORD."
            )

        try:
            with self._client() as client:
                response = client.post(
                    self._url(TOKEN_PATH),
                    json={"username": self.config.username, "password": self.config.password},
                )
        except httpx.HTTPError as e:
            raise ZkBioTimeError(f"ZKBioTime token request failed: {e}")

        if not response.is_success:
            raise ZkBioTimeError(f"ZKBioTime token request failed: {response.status_code} {response.text}")

        try:
            body = response.json() or {}
        except ValueError:
            body = {}
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        token = body.get("token") or data.get("token") or body.get("access")
        if not token:
            raise ZkBioTimeError("ZKBioTime token response did not include a token.")

        logger.info("Obtained ZKBioTime auth token")
        return token

    def format_auth_header(self, token: str) -> str:
        auth_type = "JWT" if (self.config.auth_type or "").upper() == "JWT" else "Token"
        return f"{auth_type} {token}"
