"""Utilities (logging, hashing, path sanitization, project discovery)"""
from .logging import log, vlog, warn, error, set_verbose
from .hashing import hash_content, short_project_hash, port_from_hash, projects_match
from .paths import (
    sanitize_file_path, sanitize_relative_path, normalize_path,
    file_key_for_lookup, is_supported_extension, pluralize,
)

__all__ = [
    "log", "vlog", "warn", "error", "set_verbose",
    "hash_content", "short_project_hash", "port_from_hash", "projects_match",
    "sanitize_file_path", "sanitize_relative_path", "normalize_path",
    "file_key_for_lookup", "is_supported_extension", "pluralize",
]
