"""OAuth collaborator exceptions."""


class OAuthError(RuntimeError):
    """Base class for token and provider-adapter failures."""


class TokensNotFoundError(OAuthError):
    """Raised when no tokens are stored for a (tenant, provider) pair."""


class AdapterNotFoundError(OAuthError):
    """Raised when no adapter is registered for a provider."""


class TokenRefreshError(OAuthError):
    """Raised when a provider rejects or cannot perform a token refresh."""
