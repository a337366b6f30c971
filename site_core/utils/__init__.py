# Utils package
from .retry import RetryPolicy, retry_with_backoff

__all__ = [
    "RetryPolicy",
    "retry_with_backoff",
]
