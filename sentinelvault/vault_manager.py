import os
import re
from typing import List, Optional

from . import config


def default_vault_dir() -> str:
    """Directory for vault blobs, honouring SENTINELVAULT_HOME at call time."""
    return os.environ.get(config.CONFIG_DIR_ENV) or config.CONFIG_DIR


def list_storage_keys(directory: Optional[str] = None) -> List[str]:
    """Storage keys of every vault blob present in directory, sorted."""
    directory = directory or default_vault_dir()
    if not os.path.isdir(directory):
        return []
    keys = []
    for name in os.listdir(directory):
        key, ext = os.path.splitext(name)
        if ext == config.VAULT_FILE_SUFFIX and re.fullmatch(config.STORAGE_KEY_PATTERN, key):
            keys.append(key)
    return sorted(keys)


def get_recent_storage_keys(directory: Optional[str] = None) -> List[str]:
    """
    Loads the list of recently used storage keys.
    Filters out keys whose vault no longer exists.
    """
    directory = directory or default_vault_dir()
    recent_file = os.path.join(directory, config.RECENT_VAULTS_FILE)

    recent_keys = []
    if os.path.exists(recent_file):
        with open(recent_file, 'r', encoding='utf-8') as f:
            for line in f:
                key = line.strip()
                if key and os.path.exists(os.path.join(directory, key + config.VAULT_FILE_SUFFIX)):
                    recent_keys.append(key)
    return recent_keys


def save_recent_storage_key(storage_key: str, directory: Optional[str] = None) -> None:
    """
    Saves a storage key to the list of recent vaults.
    Ensures uniqueness and keeps the list limited to MAX_RECENT_VAULTS.
    """
    directory = directory or default_vault_dir()
    os.makedirs(directory, exist_ok=True)
    recent_file = os.path.join(directory, config.RECENT_VAULTS_FILE)

    recent = get_recent_storage_keys(directory)

    if storage_key in recent:
        recent.remove(storage_key)
    recent.insert(0, storage_key)
    recent = recent[:config.MAX_RECENT_VAULTS]

    with open(recent_file, 'w', encoding='utf-8') as f:
        for key in recent:
            f.write(key + '\n')
