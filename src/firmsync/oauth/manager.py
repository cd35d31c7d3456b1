"""OAuthManager: provider adapter registry and token lifecycle."""
import logging
from typing import Dict, Iterable, Optional

from firmsync.oauth.adapters import ProviderAdapter
from firmsync.oauth.errors import AdapterNotFoundError, TokensNotFoundError
from firmsync.oauth.tokens import OAuthTokenStorage, Tokens

logger = logging.getLogger(__name__)


class OAuthManager:
    """
    Owns the set of known provider adapters and token refresh.

    Usage:
        manager = OAuthManager(token_storage, adapters=[quickbooks_adapter])
        adapter = manager.get_provider_adapter("quickbooks")
        await manager.refresh_tokens("firm-42", "quickbooks")
    """

    def __init__(
        self,
        token_storage: OAuthTokenStorage,
        adapters: Iterable[ProviderAdapter] = (),
    ):
        self.token_storage = token_storage
        self._adapters: Dict[str, ProviderAdapter] = {}
        for adapter in adapters:
            self.register_adapter(adapter)

    def register_adapter(self, adapter: ProviderAdapter) -> None:
        """Register (or replace) the adapter for adapter.name."""
        self._adapters[adapter.name] = adapter

    def get_provider_adapter(self, provider: str) -> Optional[ProviderAdapter]:
        return self._adapters.get(provider)

    async def refresh_tokens(self, tenant_id: str, provider: str) -> Tokens:
        """
        Refresh and persist the tokens for (tenant_id, provider).

        Returns:
            The new Tokens.

        Raises:
            TokensNotFoundError: if nothing is stored for the pair.
            AdapterNotFoundError: if the provider has no adapter.
            Any exception raised by the adapter's refresh().
        """
        tokens = self.token_storage.get_tokens(tenant_id, provider)
        if tokens is None:
            raise TokensNotFoundError(f"No tokens found for {tenant_id}:{provider}")
        adapter = self.get_provider_adapter(provider)
        if adapter is None:
            raise AdapterNotFoundError(f"No adapter for provider {provider}")

        new_tokens = await adapter.refresh(tokens)
        self.token_storage.save_tokens(tenant_id, provider, new_tokens)
        logger.info("Refreshed %s tokens for tenant %s", provider, tenant_id)
        return new_tokens

    def get_integration_status(self, tenant_id: str) -> Dict[str, bool]:
        """
        Map every registered provider to whether the tenant has it connected.

        Providers the tenant holds tokens for but which have no adapter are
        also reported (as connected) so orphaned credentials stay visible.
        """
        connected = set(self.token_storage.list_providers(tenant_id))
        status = {name: name in connected for name in self._adapters}
        for name in sorted(connected - set(self._adapters)):
            status[name] = True
        return status
