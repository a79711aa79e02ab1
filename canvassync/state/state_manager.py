"""
Baseline state file management (persistent across runs)
"""
import json
from pathlib import Path

from .. import config as _cfg
from ..models import BaselineEntry
from ..utils.logging import vlog, warn
from ..utils.paths import ensure_extension


def get_state_file(project_dir: Path) -> Path:
    """Return the state file path inside a project directory."""
    return Path(project_dir) / _cfg.STATE_FILE_NAME


def load_state(project_dir: Path) -> dict[str, BaselineEntry]:
    """
    In-memory format:
      { file_name: BaselineEntry(content_hash, timestamp), ... }

    On-disk:
      {"version": 1, "files": {file_name: {"contentHash": str, "timestamp": ms}}}

    A missing file is a first run. A file that cannot be read, has an
    unexpected version, or holds malformed entries is reported and ignored:
    every file then falls back to "never synced".
    """
    path = get_state_file(project_dir)
    if not path.exists():
        vlog("[state] no persisted state found (first run)")
        return {}

    try:
        data = json.loads(path.read_text("utf-8"))
    except (OSError, ValueError) as exc:
        warn(f"Failed to load persisted state: {exc}")
        return {}

    if not isinstance(data, dict) or data.get("version") != _cfg.STATE_VERSION:
        version = data.get("version") if isinstance(data, dict) else None
        warn(f"State file version mismatch (expected {_cfg.STATE_VERSION}, "
             f"got {version}). Ignoring persisted state.")
        return {}

    result: dict[str, BaselineEntry] = {}
    for name, raw in (data.get("files") or {}).items():
        try:
            entry = BaselineEntry.from_dict(raw)
        except (KeyError, TypeError):
            warn(f"Skipping malformed state entry for {name}")
            continue
        normalized = ensure_extension(name.strip())
        if normalized != name:
            vlog(f"[state] normalized persisted key {name!r} -> {normalized!r}")
        result[normalized] = entry

    vlog(f"[state] loaded persisted state for {len(result)} file(s)")
    return result


def save_state(project_dir: Path, state: dict[str, BaselineEntry]) -> bool:
    """Write the baseline to disk. Returns False (after warning) on failure."""
    payload = {
        "version": _cfg.STATE_VERSION,
        "files": {name: state[name].to_dict() for name in sorted(state)},
    }
    try:
        get_state_file(project_dir).write_text(json.dumps(payload, indent=2), "utf-8")
    except OSError as exc:
        # Best effort: don't crash the sync if state save fails
        warn(f"Failed to save persisted state: {exc}")
        return False
    vlog(f"[state] saved persisted state for {len(state)} file(s)")
    return True
