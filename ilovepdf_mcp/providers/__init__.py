from .ilove_api import (
    CredentialContext,
    ILoveAPIClient,
    TaskSession,
    TokenCache,
    get_client,
    get_token_cache,
)

__all__ = [
    "CredentialContext",
    "ILoveAPIClient",
    "TaskSession",
    "TokenCache",
    "get_client",
    "get_token_cache",
]
