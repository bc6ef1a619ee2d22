"""Open an authenticated provisioning session."""
import logging
from typing import Optional

import httpx

from .client import DigitClient
from .config import Settings, get_settings
from .context import ProvisioningContext
from .errors import AuthenticationError, state_root
from .identity import add_grants

logger = logging.getLogger("civic-core.session")


def login_candidates(tenant_id: Optional[str], default_tenant: str) -> list[str]:
    """Tenants to try for login, in order.

    A principal may only be registered under the exact child scope, under
    its root, or under the default root.
    """
    candidates: list[str] = []
    if tenant_id:
        root = state_root(tenant_id)
        candidates.append(root)
        if tenant_id != root:
            candidates.append(tenant_id)
    if default_tenant and default_tenant not in candidates:
        candidates.append(default_tenant)
    return candidates


class Session:
    """An authenticated client plus the context built on it."""

    def __init__(self, client: DigitClient, context: ProvisioningContext):
        self.client = client
        self.context = context

    @property
    def login_tenant(self) -> Optional[str]:
        return self.client.login_tenant

    async def aclose(self) -> None:
        await self.client.aclose()


async def connect(
    settings: Optional[Settings] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    tenant_id: Optional[str] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> Session:
    """Log in and build a ProvisioningContext.

    Args:
        settings: Settings to use (default: environment)
        username: Login name (default: ``settings.username``)
        password: Password (default: ``settings.password``)
        tenant_id: Scope the caller intends to work in
        http: Pre-built HTTP client, mainly for tests

    Returns:
        Session holding the client and context

    Raises:
        AuthenticationError: No credentials, or every candidate tenant refused them
    """
    settings = settings or get_settings()
    username = username or settings.username
    password = password or settings.password
    if not username or not password:
        raise AuthenticationError("No credentials: pass username/password or set CIVIC_USERNAME/CIVIC_PASSWORD")

    client = DigitClient(settings, http=http)
    candidates = login_candidates(tenant_id, settings.effective_login_tenant)
    last_error: Optional[AuthenticationError] = None
    for candidate in candidates:
        try:
            await client.login(username, password, candidate)
            last_error = None
            break
        except AuthenticationError as e:
            logger.info(f"Login on {candidate} failed: {e}")
            last_error = e

    if last_error is not None:
        await client.aclose()
        raise AuthenticationError(
            f"Invalid login credentials (tried {', '.join(candidates)}): {last_error}",
            candidates,
        )

    context = ProvisioningContext.from_client(client, settings)

    root = state_root(tenant_id) if tenant_id else None
    if root and client.login_tenant not in (root, tenant_id):
        await _grant_fallback_root(client, context, username, password, root)

    return Session(client, context)


async def _grant_fallback_root(
    client: DigitClient,
    context: ProvisioningContext,
    username: str,
    password: str,
    root: str,
) -> None:
    """Logged in on a fallback tenant: add the standard grants on ``root`` and
    log in there so direct logins against ``root`` also work."""
    result = await add_grants(
        context, root, context.catalog.capability_codes,
        username=username, principal_scope=context.operator_home_scope,
    )
    if not result.success:
        logger.warning(f"Could not add {root} grants to {username}: {result.error}")
        return
    if not result.added:
        return
    try:
        await client.login(username, password, root)
        context.operator = client.user
    except AuthenticationError as e:
        logger.warning(f"Re-login to {root} after granting roles failed: {e}")
