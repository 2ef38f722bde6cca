"""
Cache key builders for user reads.

Keys are relative to a namespace; ``CacheManager`` prefixes them with the
namespace name and its current generation before they reach Redis.
"""

USER_KEY_PREFIX = "user_"

# Raw (non-namespaced) key for the user count cached by the HTTP layer.
USER_COUNT_KEY = "users:count"


def user_key(user_id: int) -> str:
    """Key for a single-user lookup: ``user_<id>``."""
    return f"{USER_KEY_PREFIX}{user_id}"


def default_key(operation: str, *params) -> str:
    """
    Key derived from an operation's identity.

    Parameterless operations are keyed by their name alone, e.g.
    ``default_key("get_all_user") == "get_all_user"``.
    """
    if not params:
        return operation
    return ":".join([operation, *(str(p) for p in params)])
