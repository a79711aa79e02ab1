"""
Configuration constants for canvassync
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# ══════════════════════════════════════════════════════════════════════════════
#  DEFAULTS  ── overridden by YAML config or apply_profile()
# ══════════════════════════════════════════════════════════════════════════════

HOST = "127.0.0.1"

# Every project maps to one port in this range (inclusive)
PORT_RANGE_START = 3847
PORT_RANGE_END = 4096

# Length of the base58 short project id
SHORT_ID_LENGTH = 8

SUPPORTED_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".json")
DEFAULT_EXTENSION = ".tsx"

# Synced sources live in <project>/<FILES_DIR_NAME>
FILES_DIR_NAME = "files"

STATE_FILE_NAME = ".canvassync-state.json"
STATE_VERSION = 1

MANIFEST_FILE_NAME = "package.json"

# Seconds a delete we performed ourselves is ignored by the watcher
DELETE_ECHO_WINDOW = 5.0

# Skip the delete confirmation prompt on the peer
DANGEROUSLY_AUTO_DELETE = False

VERBOSE = False


@dataclass
class Settings:
    """Per-run values collected from the command line."""
    project_hash: str
    project_name: Optional[str] = None
    explicit_dir: Optional[Path] = None
    host: Optional[str] = None
    dangerously_auto_delete: Optional[bool] = None
    verbose: bool = False
    # Resolved during the first handshake
    project_dir: Optional[Path] = None
    project_dir_created: bool = False

    @property
    def files_dir(self) -> Optional[Path]:
        if self.project_dir is None:
            return None
        return self.project_dir / FILES_DIR_NAME

    @property
    def auto_delete(self) -> bool:
        if self.dangerously_auto_delete is None:
            return DANGEROUSLY_AUTO_DELETE
        return self.dangerously_auto_delete

    @property
    def bind_host(self) -> str:
        return self.host or HOST


# ══════════════════════════════════════════════════════════════════════════════
#  GLOBAL CONFIG FILE  ── $XDG_CONFIG_HOME/canvassync/config.yaml
# ══════════════════════════════════════════════════════════════════════════════

def get_global_config_dir() -> Path:
    """Return the global config directory for canvassync."""
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg) / "canvassync"
    if os.name == "nt":
        appdata = os.environ.get("APPDATA", "")
        if appdata:
            return Path(appdata) / "canvassync"
    return Path.home() / ".config" / "canvassync"


def load_global_config() -> dict:
    """Load the global config file; a missing or broken file yields {}."""
    import yaml

    cfg_path = get_global_config_dir() / "config.yaml"
    if not cfg_path.is_file():
        return {}
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def get_profile(data: dict) -> dict:
    """
    Flatten a config dict into a single profile.
    Top-level keys act as defaults, the `defaults` section overrides them.
    """
    merged = {k: v for k, v in data.items() if k != "defaults"}
    defaults = data.get("defaults") or {}
    if isinstance(defaults, dict):
        merged.update(defaults)
    return merged


# ══════════════════════════════════════════════════════════════════════════════
#  APPLY PROFILE  ── mutates module-level variables
# ══════════════════════════════════════════════════════════════════════════════

def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def apply_profile(profile: dict):
    """
    Apply a profile dict to the module-level config variables.
    Supports keys: host, dangerously_auto_delete, files_dir_name,
                   delete_echo_window, verbose.
    """
    global HOST, DANGEROUSLY_AUTO_DELETE, FILES_DIR_NAME, DELETE_ECHO_WINDOW, VERBOSE

    if "host" in profile:
        HOST = str(profile["host"])
    if "dangerously_auto_delete" in profile:
        DANGEROUSLY_AUTO_DELETE = _as_bool(profile["dangerously_auto_delete"])
    if "files_dir_name" in profile and profile["files_dir_name"]:
        FILES_DIR_NAME = str(profile["files_dir_name"])
    if "delete_echo_window" in profile:
        DELETE_ECHO_WINDOW = float(profile["delete_echo_window"])
    if "verbose" in profile:
        VERBOSE = _as_bool(profile["verbose"])
