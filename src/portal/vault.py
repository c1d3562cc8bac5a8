"""Credential Vault.

Access-control and audit layer in front of the Secret Store. Disclosure is
gated by the tool's current status, read fresh from the registry on every
call, and each successful disclosure produces exactly one audit event.
"""

import asyncio
from typing import Optional

from shared.errors import (
    SecretNotFoundError,
    SecretStoreError,
    ToolNotFoundError,
    ToolUnavailableError,
)
from shared.logging import get_logger
from shared.models import (
    CredentialField,
    Disclosure,
    UnavailableReason,
    UserContext,
)

from portal.audit import DisclosureAuditLog
from portal.registry import ToolRegistry
from portal.secret_store import SecretStore

logger = get_logger(__name__)

CLIPBOARD_LABELS = {
    CredentialField.EMAIL: "Email",
    CredentialField.PASSWORD: "Senha",
    CredentialField.COOKIE: "Cookie",
}


class CredentialVault:
    """
    Status-gated disclosure of tool credentials.

    Responsibilities:
    - Refuse disclosure for tools in maintenance or offline
    - Fetch bundles from the secret store within a timeout
    - Record one audit event per successful disclosure
    """

    def __init__(
        self,
        registry: ToolRegistry,
        secret_store: SecretStore,
        audit_log: DisclosureAuditLog,
        timeout_seconds: float = 5.0
    ) -> None:
        self.registry = registry
        self.secret_store = secret_store
        self.audit_log = audit_log
        self.timeout_seconds = timeout_seconds

    async def disclose(
        self,
        user: UserContext,
        tool_id: int,
        field: CredentialField,
        request_id: Optional[str] = None
    ) -> Disclosure:
        """
        Reveal one credential field of a tool, or all of them.

        Args:
            user: Resolved caller identity
            tool_id: Tool whose credentials are requested
            field: Field selector; ``all`` is audited as a single event
            request_id: Correlation id copied into the audit event

        Returns:
            The revealed values and the id of the audit event

        Raises:
            ToolNotFoundError: If the tool or its credentials do not exist
            ToolUnavailableError: If the tool status forbids disclosure,
                or the secret store did not answer in time
        """
        self._check_status(user, tool_id, field)

        try:
            bundle = await asyncio.wait_for(
                self.secret_store.fetch(tool_id),
                timeout=self.timeout_seconds
            )
        except SecretNotFoundError as e:
            logger.warning("No credentials stored for tool", tool_id=tool_id)
            raise ToolNotFoundError(tool_id) from e
        except (asyncio.TimeoutError, SecretStoreError) as e:
            logger.warning(
                "Secret store unavailable",
                tool_id=tool_id,
                error=str(e) or type(e).__name__
            )
            raise ToolUnavailableError(tool_id, UnavailableReason.TIMEOUT) from e

        # The status may have changed while the store was answering
        self._check_status(user, tool_id, field)

        values = bundle.reveal(field)
        event = await self.audit_log.record(user, tool_id, field, request_id)

        return Disclosure(tool_id=tool_id, field=field, values=values, event_id=event.id)

    def _check_status(self, user: UserContext, tool_id: int, field: CredentialField) -> None:
        info = self.registry.get(tool_id).status_info
        if info.allows_disclosure:
            return

        logger.info(
            "Disclosure refused",
            user_id=user.user_id,
            tool_id=tool_id,
            field=field.value,
            reason=info.unavailable_reason.value
        )
        raise ToolUnavailableError(tool_id, info.unavailable_reason)


def credential_text(disclosure: Disclosure) -> str:
    """
    Clipboard text for a disclosure.

    A single field is returned as is; ``all`` becomes one labelled line
    per field.
    """
    if disclosure.field != CredentialField.ALL:
        return disclosure.values[disclosure.field.value]

    return "\n".join(
        f"{label}: {disclosure.values[field.value]}"
        for field, label in CLIPBOARD_LABELS.items()
        if field.value in disclosure.values
    )
