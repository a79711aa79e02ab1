"""
Project directory discovery

A synced project is a directory holding a package.json manifest that records
the short project id, plus a files/ directory with the synced sources.
"""
import json
import re
from pathlib import Path
from typing import Optional

from .. import config as _cfg
from .hashing import short_project_hash


def to_package_name(name: str) -> str:
    name = re.sub(r"[^a-z0-9-]", "-", name.lower())
    name = name.strip("-")
    return re.sub(r"-+", "-", name)


def to_dir_name(name: str) -> str:
    name = re.sub(r"[^a-zA-Z0-9\- ]", "-", name)
    name = re.sub(r"^[-\s]+|[-\s]+$", "", name)
    return re.sub(r"-+", "-", name)


def _read_manifest(path: Path) -> Optional[dict]:
    try:
        data = json.loads(path.read_text("utf-8"))
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def get_project_hash_from_cwd(cwd: Optional[Path] = None) -> Optional[str]:
    """Short project id recorded in ./package.json, if any."""
    manifest = _read_manifest((cwd or Path.cwd()) / _cfg.MANIFEST_FILE_NAME)
    if not manifest:
        return None
    value = manifest.get("shortProjectHash")
    return str(value) if value else None


def _matches_project(manifest_path: Path, project_hash: str) -> bool:
    manifest = _read_manifest(manifest_path)
    if not manifest:
        return False
    return manifest.get("shortProjectHash") == short_project_hash(project_hash)


def find_existing_project_dir(base_dir: Path, project_hash: str) -> Optional[Path]:
    """Look in base_dir itself, then in its direct children."""
    if _matches_project(base_dir / _cfg.MANIFEST_FILE_NAME, project_hash):
        return base_dir
    for child in sorted(base_dir.iterdir()):
        if child.is_dir() and _matches_project(child / _cfg.MANIFEST_FILE_NAME, project_hash):
            return child
    return None


def find_or_create_project_dir(project_hash: str,
                               project_name: Optional[str] = None,
                               explicit_dir: Optional[Path] = None,
                               cwd: Optional[Path] = None) -> tuple[Path, bool]:
    """
    Returns (project_dir, created).

    Raises ValueError when a new directory is needed but no project name is
    known to derive its name from.
    """
    if explicit_dir is not None:
        resolved = Path(explicit_dir).expanduser().resolve()
        (resolved / _cfg.FILES_DIR_NAME).mkdir(parents=True, exist_ok=True)
        return resolved, False

    base = (cwd or Path.cwd()).resolve()
    existing = find_existing_project_dir(base, project_hash)
    if existing is not None:
        (existing / _cfg.FILES_DIR_NAME).mkdir(parents=True, exist_ok=True)
        return existing, False

    if not project_name:
        raise ValueError("Failed to get project name. Pass --name <project name>.")

    short_id = short_project_hash(project_hash)
    project_dir = base / (to_dir_name(project_name) or short_id)
    (project_dir / _cfg.FILES_DIR_NAME).mkdir(parents=True, exist_ok=True)

    manifest = {
        "name": to_package_name(project_name) or short_id,
        "version": "1.0.0",
        "private": True,
        "shortProjectHash": short_id,
        "projectName": project_name,
    }
    (project_dir / _cfg.MANIFEST_FILE_NAME).write_text(json.dumps(manifest, indent=2), "utf-8")
    return project_dir, True
