import json
from pathlib import Path

from config import (
    Config,
    apply_dict_to_dataclass,
    migrate_config,
)
from logging_utils import log_event


def get_config_dir() -> Path:
    """Get config directory in the user's home."""
    return Path.home() / '.intensitycontrol'


def get_config_file() -> Path:
    """Get config file path."""
    return get_config_dir() / 'config.json'


def load_config(path: Path | None = None) -> Config:
    """Load config from JSON file, returns default if not found or unreadable."""
    try:
        config_file = Path(path) if path is not None else get_config_file()
        if config_file.exists():
            with open(config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            config = Config()
            apply_dict_to_dataclass(config, data)
            migrate_config(config, data.get('version') if isinstance(data, dict) else None)
            log_event("INFO", "Config", "Loaded", path=config_file, version=config.version)
            return config

        log_event("INFO", "Config", "No config file found, using defaults", path=config_file)
        return Config()
    except Exception as e:
        log_event("WARN", "Config", "Failed to load, using defaults", error=e)
        return Config()
