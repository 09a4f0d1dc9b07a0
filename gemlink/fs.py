"""Retrieve some paths from filesystem.

A lot of logic comes from `appdirs`:
https://github.com/ActiveState/appdirs/blob/master/appdirs.py
"""

from functools import lru_cache
from os import getenv
from os.path import expanduser
from pathlib import Path
from typing import Optional


APP_NAME = "gemlink"


@lru_cache(None)
def get_config_path() -> Path:
    """Return the user config file path."""
    config_dir = Path(getenv("XDG_CONFIG_HOME", expanduser("~/.config")))
    return config_dir / (APP_NAME + ".json")


@lru_cache(None)
def get_user_data_path() -> Path:
    """Return the user data directory path."""
    path = Path(getenv("XDG_DATA_HOME", expanduser("~/.local/share")))
    return path / APP_NAME


@lru_cache(None)
def get_cert_stash_path() -> Path:
    """Return the path of the pinned certificates file."""
    return get_user_data_path() / "known_hosts"


def ensure_gemlink_files_exist() -> Optional[str]:
    """Create the required directories and files, return an error or None."""
    try:
        get_config_path().parent.mkdir(parents=True, exist_ok=True)
        get_user_data_path().mkdir(parents=True, exist_ok=True)
        get_cert_stash_path().touch(exist_ok=True)
    except OSError as exc:
        return str(exc)
    return None
