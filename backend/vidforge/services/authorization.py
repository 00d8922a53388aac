"""
Subscription-tier authorization.

The entitlement provider maps a caller identity to a tier; processing
requires one of settings.elevated_tiers.
"""

import logging
from typing import Iterable, Protocol

import httpx

from vidforge.config import Settings, load_entitlements_config
from vidforge.errors import AuthorizationError
from vidforge.services.ai_clients.base import RETRY_DECORATOR

logger = logging.getLogger(__name__)


class EntitlementProvider(Protocol):
    """Authorization collaborator."""

    async def get_tier(self, user_id: str) -> str | None:
        """Return the caller's tier, or None for unknown users."""
        ...


class StaticEntitlementProvider:
    """
    Tiers from config/entitlements.yaml.

    Format:
        default_tier: free
        users:
          alice: pro
    """

    def __init__(self, tiers: dict[str, str], default_tier: str | None = None):
        self.tiers = tiers
        self.default_tier = default_tier

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaticEntitlementProvider":
        config = load_entitlements_config(settings)
        return cls(config.get("users") or {}, config.get("default_tier"))

    async def get_tier(self, user_id: str) -> str | None:
        return self.tiers.get(user_id, self.default_tier)


class HttpEntitlementProvider:
    """
    Entitlement service over HTTP.

    GET {base_url}/v1/users/{user_id}/entitlement -> {"tier": "pro"}
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpEntitlementProvider":
        return cls(settings.entitlements_url)

    async def close(self) -> None:
        await self.http_client.aclose()

    @RETRY_DECORATOR
    async def _fetch(self, user_id: str) -> httpx.Response:
        return await self.http_client.get(f"{self.base_url}/v1/users/{user_id}/entitlement")

    async def get_tier(self, user_id: str) -> str | None:
        response = await self._fetch(user_id)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json().get("tier")


class Authorizer:
    """
    Gatekeeper applied before any processing work starts.

    Example:
        authorizer = Authorizer(provider, ["pro", "business"])
        tier = await authorizer.authorize("user-1")
    """

    def __init__(self, provider: EntitlementProvider, elevated_tiers: Iterable[str]):
        self.provider = provider
        self.elevated_tiers = frozenset(elevated_tiers)

    async def authorize(self, user_id: str | None, correlation_id: str | None = None) -> str:
        """
        Check that the caller may run the pipeline.

        Raises:
            AuthorizationError: Unauthenticated caller, unknown user, or
                tier outside the elevated set

        Returns:
            The caller's tier
        """
        if not user_id:
            raise AuthorizationError(
                "Missing caller identity",
                authenticated=False,
                correlation_id=correlation_id,
            )

        try:
            tier = await self.provider.get_tier(user_id)
        except Exception as e:
            logger.error(f"Entitlement lookup failed for {user_id} [{correlation_id}]: {e}")
            raise AuthorizationError(
                "Entitlement lookup failed", correlation_id=correlation_id
            ) from e

        if tier not in self.elevated_tiers:
            logger.info(f"User {user_id} denied: tier={tier}")
            raise AuthorizationError(
                f"Tier {tier!r} cannot use processing",
                correlation_id=correlation_id,
            )
        return tier
