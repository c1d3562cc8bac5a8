"""Secret Store collaborators.

The Secret Store owns at-rest storage of credential bundles. The Credential
Vault sits in front of it and only decides who may see what.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared.config import load_yaml_config
from shared.errors import (
    ConfigurationError,
    SecretNotFoundError,
    SecretStoreError,
    SecretStoreTimeoutError,
)
from shared.logging import get_logger
from shared.models import CredentialBundle
from shared.schema import SECRETS_SCHEMA, validate_schema

logger = get_logger(__name__)


class SecretStore(ABC):
    """Storage engine for credential bundles, keyed by tool id."""

    @abstractmethod
    async def fetch(self, tool_id: int) -> CredentialBundle:
        """
        Fetch the credential bundle of a tool.

        Raises:
            SecretNotFoundError: If the store holds nothing for the tool
            SecretStoreError: If the store cannot be reached
        """

    async def close(self) -> None:
        """Release any resources held by the store."""


class InMemorySecretStore(SecretStore):
    """Bundles held in process memory, loaded from configuration."""

    def __init__(self, bundles: Optional[dict[int, CredentialBundle]] = None) -> None:
        self._bundles: dict[int, CredentialBundle] = dict(bundles or {})

    def put(self, tool_id: int, bundle: CredentialBundle) -> None:
        self._bundles[tool_id] = bundle

    async def fetch(self, tool_id: int) -> CredentialBundle:
        bundle = self._bundles.get(tool_id)
        if bundle is None:
            raise SecretNotFoundError("no credentials stored", tool_id=tool_id)
        return bundle

    @classmethod
    def from_yaml(cls, path: str | Path) -> "InMemorySecretStore":
        """
        Load bundles from a YAML file of the form::

            credentials:
              1: {email: ..., password: ..., cookie: ...}

        Raises:
            ConfigurationError: If the file does not match the secrets schema
        """
        data = load_yaml_config(path)
        if not data:
            logger.warning("Secrets file missing or empty", path=str(path))
            return cls()

        # YAML turns numeric keys into ints; the schema matches string keys
        credentials = data.get("credentials")
        if isinstance(credentials, dict):
            data = {**data, "credentials": {str(k): v for k, v in credentials.items()}}

        is_valid, errors = validate_schema(data, SECRETS_SCHEMA)
        if not is_valid:
            # Error messages may echo values, so only the count is reported
            raise ConfigurationError(f"Invalid secrets file '{path}': {len(errors)} schema error(s)")

        bundles = {}
        for tool_id, fields in data["credentials"].items():
            try:
                bundles[int(tool_id)] = CredentialBundle(**fields)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid credentials for tool {tool_id} in '{path}'"
                ) from e

        logger.info("Secrets loaded", path=str(path), tool_count=len(bundles))
        return cls(bundles)


class RemoteSecretStore(SecretStore):
    """
    Secret store reached over HTTP.

    Expects ``GET {base_url}/secrets/{tool_id}`` to answer with a JSON
    object holding email, password and cookie. Calls are never retried.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        api_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._api_token = api_token
        self._client = client

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._get_headers()
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(self, tool_id: int) -> CredentialBundle:
        client = await self._get_client()
        try:
            response = await client.get(f"/secrets/{tool_id}")
        except httpx.TimeoutException as e:
            raise SecretStoreTimeoutError("request timed out", tool_id=tool_id, orig_exc=e) from e
        except httpx.HTTPError as e:
            raise SecretStoreError("request failed", tool_id=tool_id, orig_exc=e) from e

        if response.status_code == 404:
            raise SecretNotFoundError("no credentials stored", tool_id=tool_id)
        if response.status_code != 200:
            raise SecretStoreError(f"unexpected status {response.status_code}", tool_id=tool_id)

        try:
            payload: Any = response.json()
            return CredentialBundle(**payload)
        except (ValueError, TypeError) as e:
            raise SecretStoreError("malformed response", tool_id=tool_id, orig_exc=e) from e
