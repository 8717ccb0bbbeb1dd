"""
Upload pipeline configuration.

Settings live in the [UPLOAD] section of ~/.wallup/wallup.ini and fall back
to hardcoded defaults. ``load_upload_settings()`` snapshots every key into an
``UploadSettings`` dataclass that is handed to the pipeline components.
"""

import os
import configparser
from dataclasses import dataclass, fields
from threading import Lock
from typing import Any, Optional

from src.utils.logger import log


_ini_file_lock = Lock()

SECTION = "UPLOAD"

# Hardcoded default values (final fallback)
_HARDCODED_DEFAULTS = {
    "blob_endpoint": "https://ovrica.name.ng/api/blob-upload",
    "api_base_url": "https://ovrica.name.ng",
    "save_path": "/api/save-wallpaper",
    "image_folder": "wallpapers",
    "thumbnail_folder": "wallpapers/thumbnails",
    "job_timeout": 120.0,
    "cache_ttl": 3600.0,
    "thumbnail_width": 250,
    "thumbnail_quality": 60,
    "thumbnail_max_kb": 20,
    "compress_main_image": False,
    "main_max_width": 1920,
    "main_max_height": 1080,
    "main_max_kb": 250,
    "max_file_mb": 10,
    "title_max_length": 100,
    "description_max_length": 300,
    "probe_url": "https://www.google.com/favicon.ico",
    "probe_interval": 30.0,
    "probe_timeout": 5.0,
    "slow_threshold": 2.0,
}


def get_config_dir() -> str:
    """Base directory for config, logs and caches (WALLUP_HOME overrides)."""
    base = os.environ.get("WALLUP_HOME") or os.path.join(os.path.expanduser("~"), ".wallup")
    os.makedirs(base, exist_ok=True)
    return base


def get_config_path() -> str:
    return os.environ.get("WALLUP_CONFIG") or os.path.join(get_config_dir(), "wallup.ini")


def _value_type(key: str) -> str:
    default = _HARDCODED_DEFAULTS[key]
    if isinstance(default, bool):
        return "bool"
    if isinstance(default, int):
        return "int"
    if isinstance(default, float):
        return "float"
    return "str"


def get_upload_setting(key: str, ini_path: Optional[str] = None) -> Any:
    """Get an upload setting with INI-then-default fallback.

    Lookup order:
      1. INI [UPLOAD] section
      2. _HARDCODED_DEFAULTS[key]

    Args:
        key: Setting name (e.g., 'job_timeout')
        ini_path: Config file to read; defaults to get_config_path()

    Returns:
        Setting value coerced to the type of its default, or None for unknown keys.
    """
    if key not in _HARDCODED_DEFAULTS:
        log(f"Unknown upload setting requested: {key}", level="warning", category="config")
        return None

    ini_path = ini_path or get_config_path()
    if os.path.exists(ini_path):
        with _ini_file_lock:
            cfg = configparser.ConfigParser()
            cfg.read(ini_path, encoding='utf-8')

            if cfg.has_option(SECTION, key):
                value_type = _value_type(key)
                try:
                    raw = cfg.get(SECTION, key)
                    if raw and raw.strip():
                        if value_type == "bool":
                            return cfg.getboolean(SECTION, key)
                        elif value_type == "int":
                            return cfg.getint(SECTION, key)
                        elif value_type == "float":
                            return cfg.getfloat(SECTION, key)
                        else:
                            return raw.strip()
                except (ValueError, TypeError, configparser.Error):
                    log(f"Invalid value for upload setting {key}, using default",
                        level="warning", category="config")

    return _HARDCODED_DEFAULTS[key]


def save_upload_setting(key: str, value: Any, ini_path: Optional[str] = None) -> None:
    """Write a key to the INI [UPLOAD] section."""
    with _ini_file_lock:
        ini_path = ini_path or get_config_path()
        cfg = configparser.ConfigParser()

        if os.path.exists(ini_path):
            cfg.read(ini_path, encoding='utf-8')

        if not cfg.has_section(SECTION):
            cfg.add_section(SECTION)

        cfg.set(SECTION, key, str(value))

        try:
            with open(ini_path, 'w', encoding='utf-8') as f:
                cfg.write(f)
        except OSError as e:
            log(f"Error saving upload setting {key}: {e}", level="error", category="config")
            raise


@dataclass
class UploadSettings:
    blob_endpoint: str = _HARDCODED_DEFAULTS["blob_endpoint"]
    api_base_url: str = _HARDCODED_DEFAULTS["api_base_url"]
    save_path: str = _HARDCODED_DEFAULTS["save_path"]
    image_folder: str = _HARDCODED_DEFAULTS["image_folder"]
    thumbnail_folder: str = _HARDCODED_DEFAULTS["thumbnail_folder"]
    job_timeout: float = _HARDCODED_DEFAULTS["job_timeout"]
    cache_ttl: float = _HARDCODED_DEFAULTS["cache_ttl"]
    thumbnail_width: int = _HARDCODED_DEFAULTS["thumbnail_width"]
    thumbnail_quality: int = _HARDCODED_DEFAULTS["thumbnail_quality"]
    thumbnail_max_kb: int = _HARDCODED_DEFAULTS["thumbnail_max_kb"]
    compress_main_image: bool = _HARDCODED_DEFAULTS["compress_main_image"]
    main_max_width: int = _HARDCODED_DEFAULTS["main_max_width"]
    main_max_height: int = _HARDCODED_DEFAULTS["main_max_height"]
    main_max_kb: int = _HARDCODED_DEFAULTS["main_max_kb"]
    max_file_mb: int = _HARDCODED_DEFAULTS["max_file_mb"]
    title_max_length: int = _HARDCODED_DEFAULTS["title_max_length"]
    description_max_length: int = _HARDCODED_DEFAULTS["description_max_length"]
    probe_url: str = _HARDCODED_DEFAULTS["probe_url"]
    probe_interval: float = _HARDCODED_DEFAULTS["probe_interval"]
    probe_timeout: float = _HARDCODED_DEFAULTS["probe_timeout"]
    slow_threshold: float = _HARDCODED_DEFAULTS["slow_threshold"]

    @property
    def save_url(self) -> str:
        return self.api_base_url.rstrip('/') + self.save_path


def load_upload_settings(ini_path: Optional[str] = None) -> UploadSettings:
    """Build UploadSettings from the INI file, one key at a time."""
    values = {f.name: get_upload_setting(f.name, ini_path) for f in fields(UploadSettings)}
    return UploadSettings(**values)
