from .client import (
    FlomoClient,
    MemoAPIAuthError,
    MemoAPIError,
    MemoAPIRemoteError,
    MemoAPIResponseError,
    MemoAPITransportError,
)

__all__ = [
    "FlomoClient",
    "MemoAPIError",
    "MemoAPITransportError",
    "MemoAPIResponseError",
    "MemoAPIRemoteError",
    "MemoAPIAuthError",
]
