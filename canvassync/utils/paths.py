"""
File name sanitization and path normalization

Remote file names are arbitrary strings; the local side needs safe relative
paths that are valid module identifiers. The mapping is stable but not
invertible, and collisions are left for the caller to handle.
"""
import re
from enum import Enum
from typing import NamedTuple, Optional

from .. import config as _cfg

_FIRST_CHAR_RE = re.compile(r"^[a-zA-Z$_]")
_INVALID_CHARS_RE = re.compile(r"[^a-zA-Z0-9$_]")
_UNDERSCORE_RUN_RE = re.compile(r"_+")
_ONLY_DOTS_RE = re.compile(r"^\.+$")
_SPLIT_EXT_RE = re.compile(r"^(.+?)(\.[^.]+)?$", re.DOTALL)
_CODE_EXT_RE = re.compile(r"\.(tsx?|jsx?)$")

FALLBACK_NAME = "MyComponent"
_COMPONENT_EXTENSIONS = ("ts", "tsx", "js", "jsx", "json")


class NameKind(Enum):
    VARIABLE = "variable"
    SELECTOR = "selector"
    DIRECTORY = "directory"


class SanitizedPath(NamedTuple):
    path: str
    dir_name: str
    name: str
    extension: str


def sanitized_name(kind: NameKind, name: Optional[str]) -> Optional[str]:
    """Sanitize one path segment; None means the segment should be dropped."""
    if not name:
        return None
    valid = name.strip()
    if not valid:
        return None
    prefix = "_" if kind is NameKind.SELECTOR else "$"

    if kind is NameKind.DIRECTORY:
        if _ONLY_DOTS_RE.match(valid):
            return None
    elif not _FIRST_CHAR_RE.match(valid):
        valid = prefix + valid

    valid = _INVALID_CHARS_RE.sub("_", valid)
    valid = _UNDERSCORE_RUN_RE.sub("_", valid)
    if valid.startswith("$_"):
        valid = prefix + valid[2:]
    return valid


def capitalize_first_letter(s: str) -> str:
    return s[:1].upper() + s[1:]


def _split_extension(file_name: str) -> tuple[str, str]:
    m = _SPLIT_EXT_RE.match(file_name)
    if not m:
        return file_name, ""
    return m.group(1), (m.group(2) or "")[1:]


def _dirname(file_path: str) -> str:
    at = file_path.rfind("/")
    return "" if at < 0 else file_path[:at]


def _filename(file_path: str) -> str:
    return file_path[file_path.rfind("/") + 1:]


def _path_join(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p.strip("/"))


def normalize_path(file_path: str) -> str:
    """Collapse '.', '..', repeated separators and backslashes; keep a leading '/'."""
    if not file_path:
        return ""
    is_absolute = file_path.startswith("/")
    stack: list[str] = []
    for segment in file_path.replace("\\", "/").split("/"):
        if not segment or segment == ".":
            continue
        if segment == "..":
            if stack:
                stack.pop()
            continue
        stack.append(segment)
    normalized = "/".join(stack)
    return f"/{normalized}" if is_absolute else normalized


def normalize_code_file_path(file_path: str) -> str:
    """normalize_path, always relative."""
    return normalize_path(file_path).lstrip("/")


def strip_extension(file_path: str) -> str:
    return _CODE_EXT_RE.sub("", normalize_code_file_path(file_path))


def is_supported_extension(file_path: str) -> bool:
    return file_path.lower().endswith(_cfg.SUPPORTED_EXTENSIONS)


def ensure_extension(file_path: str, extension: str = _cfg.DEFAULT_EXTENSION) -> str:
    normalized = normalize_code_file_path(file_path)
    return normalized if is_supported_extension(normalized) else normalized + extension


def canonical_file_name(file_path: str) -> str:
    # The extension stays: Foo.ts and Foo.tsx are different files
    return normalize_code_file_path(file_path)


def file_key_for_lookup(file_path: str) -> str:
    """Case-insensitive key for matching names across both sides."""
    return canonical_file_name(file_path).lower()


def sanitize_file_path(raw_path: str, capitalize: bool = True) -> SanitizedPath:
    """
    Turn an arbitrary remote identifier into a safe relative path.

    Directory segments and the base name are sanitized independently. When
    `capitalize` is set, component files (.tsx or no known code extension)
    get an upper-case first letter.
    """
    trimmed = raw_path.strip()
    input_name, extension = _split_extension(_filename(trimmed))
    ext_with_dot = f".{extension}" if extension else ""

    dir_parts = (sanitized_name(NameKind.DIRECTORY, part) for part in _dirname(trimmed).split("/"))
    dir_name = "/".join(p for p in dir_parts if p)

    name = sanitized_name(NameKind.VARIABLE, input_name) or FALLBACK_NAME
    is_component = extension.lower() == "tsx" or extension.lower() not in _COMPONENT_EXTENSIONS
    if capitalize and is_component:
        name = capitalize_first_letter(name)

    return SanitizedPath(
        path=_path_join(dir_name, name + ext_with_dot),
        dir_name=dir_name,
        name=name,
        extension=extension,
    )


def sanitize_relative_path(raw_name: str) -> str:
    """Local relative path a remote file name is stored under (casing preserved)."""
    candidate = ensure_extension(raw_name.strip())
    return normalize_path(sanitize_file_path(candidate, capitalize=False).path)


def pluralize(count: int, singular: str, plural: Optional[str] = None) -> str:
    """pluralize(3, "file") -> "3 files" """
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"
