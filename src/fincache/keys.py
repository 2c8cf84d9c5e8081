"""Namespace-aware cache keys.

Every key lives in a scope. Keys without an explicit scope land in the
global scope, so a per-user scope can be dropped wholesale without
touching shared entries and without relying on callers to embed user ids
in their key strings.
"""

from fincache.types import Scope

GLOBAL_SCOPE: Scope = ("global",)

_SEPARATOR = ":"
_ESCAPE_MAP = {"\\": "\\\\", ":": "\\:"}
_UNESCAPE_MAP = {"\\\\": "\\", "\\:": ":"}


def _escape(part: str) -> str:
    result = part
    for char, escaped in _ESCAPE_MAP.items():
        result = result.replace(char, escaped)
    return result


def user_scope(user_id: str | int) -> Scope:
    """Scope for data owned by a single user."""
    return ("user", str(user_id))


def _normalize_scope(scope: Scope | None) -> Scope:
    if scope is None:
        return GLOBAL_SCOPE
    if not scope:
        raise ValueError("Scope must have at least one part")
    return tuple(str(part) for part in scope)


def scoped_key(key: str, scope: Scope | None = None) -> str:
    """Serialize ``scope + (key,)`` into a storage key."""
    if not key:
        raise ValueError("Cache key must not be empty")
    parts = (*_normalize_scope(scope), key)
    return _SEPARATOR.join(_escape(part) for part in parts)


def scope_prefix(scope: Scope) -> str:
    """Serialized prefix shared by every key in ``scope``."""
    parts = _normalize_scope(scope)
    return _SEPARATOR.join(_escape(part) for part in parts) + _SEPARATOR


def split_key(serialized: str) -> tuple[str, ...]:
    """Split a storage key back into its parts."""
    parts: list[str] = []
    current = ""
    i = 0

    while i < len(serialized):
        if serialized[i] == "\\":
            escaped = serialized[i : i + 2]
            if escaped in _UNESCAPE_MAP:
                current += _UNESCAPE_MAP[escaped]
                i += 2
                continue
            current += serialized[i]
            i += 1
        elif serialized[i] == _SEPARATOR:
            parts.append(current)
            current = ""
            i += 1
        else:
            current += serialized[i]
            i += 1

    parts.append(current)
    return tuple(parts)
