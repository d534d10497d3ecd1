from .base import IdentityClient, StaticTokenProvider, TokenProvider
from .session import AuthSessionManager
from .token_cache import (
    EncryptedFileTokenCache,
    KeyringTokenCache,
    MemoryTokenCache,
    TokenCache,
    build_token_cache,
)

__all__ = [
    "AuthSessionManager",
    "EncryptedFileTokenCache",
    "IdentityClient",
    "KeyringTokenCache",
    "MemoryTokenCache",
    "StaticTokenProvider",
    "TokenCache",
    "TokenProvider",
    "build_token_cache",
]
