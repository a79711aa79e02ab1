"""
Content fingerprints and project identifiers
"""
import hashlib

from .. import config as _cfg

BASE58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def hash_content(content: str) -> str:
    """SHA-256 hex digest of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def short_project_hash(full_hash: str, length: int = _cfg.SHORT_ID_LENGTH) -> str:
    """
    Derive a short base58 id from a project hash.

    An input that already has the target length is returned unchanged, so the
    short id can be used anywhere the full hash is accepted.
    """
    if len(full_hash) == length:
        return full_hash

    n = int.from_bytes(hashlib.sha256(full_hash.encode("utf-8")).digest(), "big")
    chars = []
    while len(chars) < length:
        n, rem = divmod(n, 58)
        chars.append(BASE58[rem])
    return "".join(chars)


def port_from_hash(project_hash: str) -> int:
    """
    Map a project id (full or short) into the configured port range.
    The short id is hashed, so both forms resolve to the same port.
    """
    short = short_project_hash(project_hash)
    span = _cfg.PORT_RANGE_END - _cfg.PORT_RANGE_START + 1
    digest = hashlib.sha256(short.encode("utf-8")).digest()
    return _cfg.PORT_RANGE_START + int.from_bytes(digest[:4], "big") % span


def projects_match(a: str, b: str) -> bool:
    """True if both ids (full or short) refer to the same project."""
    return short_project_hash(a) == short_project_hash(b)
