"""
Application file logger.

Owns the rotating log file under ~/.wallup/logs and the [LOGGING] settings
that decide which levels and categories reach the file and the live log
viewers. ``src.utils.logger.log`` is the only intended caller.
"""

import configparser
import gzip
import logging
import os
import re
import shutil
import threading
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any, Dict, Optional


CATEGORIES = ("general", "uploads", "network", "cache", "thumbnails", "config", "ui")


class AppLogger:
    """Rotating file logger with per-category filtering."""

    TRACE = 5

    LEVEL_MAP = {
        'TRACE': TRACE,
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL,
    }

    DEFAULTS = {
        'enabled': 'true',
        'rotation': 'size',       # 'size' or 'daily'
        'max_bytes': '10485760',
        'backup_count': '7',
        'compress': 'true',
        'level_file': 'INFO',
        'level_gui': 'INFO',
    }

    _BOOL_KEYS = ('enabled', 'compress')
    _INT_KEYS = ('max_bytes', 'backup_count')
    _TIME_RE = re.compile(r'^\d{2}:\d{2}:\d{2}\s+')

    def __init__(self, config_path: Optional[str] = None, base_dir: Optional[str] = None):
        logging.addLevelName(self.TRACE, "TRACE")
        from src.core.upload_config import get_config_dir, get_config_path

        self._config_path = config_path or get_config_path()
        self._base_dir = base_dir or get_config_dir()
        self._lock = threading.Lock()
        self._settings: Dict[str, str] = dict(self.DEFAULTS)
        self._logger = logging.getLogger("wallup.file")
        self._logger.propagate = False
        self._handler: Optional[logging.Handler] = None
        self._file_level = logging.INFO
        self._gui_level = logging.INFO
        self._load_settings()
        self._apply_settings()

    @staticmethod
    def _strip_leading_time(message: str) -> str:
        return AppLogger._TIME_RE.sub('', message, count=1)

    def _load_settings(self) -> None:
        if not os.path.exists(self._config_path):
            return
        cfg = configparser.ConfigParser()
        try:
            cfg.read(self._config_path, encoding='utf-8')
        except configparser.Error:
            return
        if cfg.has_section('LOGGING'):
            for key, value in cfg.items('LOGGING'):
                self._settings[key] = value

    def get_logs_dir(self) -> str:
        logs_dir = os.path.join(self._base_dir, "logs")
        os.makedirs(logs_dir, exist_ok=True)
        return logs_dir

    def get_current_log_path(self) -> str:
        return os.path.join(self.get_logs_dir(), "wallup.log")

    def _apply_settings(self) -> None:
        settings = self.get_settings()
        self._file_level = self.LEVEL_MAP.get(str(settings['level_file']).upper(), logging.INFO)
        self._gui_level = self.LEVEL_MAP.get(str(settings['level_gui']).upper(), logging.INFO)

        with self._lock:
            if self._handler is not None:
                self._logger.removeHandler(self._handler)
                self._handler.close()
                self._handler = None

            if not settings['enabled']:
                return

            path = self.get_current_log_path()
            if settings['rotation'] == 'daily':
                handler = TimedRotatingFileHandler(
                    path, when='midnight', backupCount=settings['backup_count'], encoding='utf-8')
            else:
                handler = RotatingFileHandler(
                    path, maxBytes=settings['max_bytes'],
                    backupCount=settings['backup_count'], encoding='utf-8')
            if settings['compress']:
                handler.namer = lambda name: name + ".gz"
                handler.rotator = _gzip_rotator
            handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
            self._logger.addHandler(handler)
            self._logger.setLevel(self.TRACE)
            self._handler = handler

    def get_settings(self) -> Dict[str, Any]:
        """Return settings with booleans and integers normalized."""
        merged = dict(self.DEFAULTS)
        merged.update(self._settings)
        result: Dict[str, Any] = {}
        for key, value in merged.items():
            if key in self._BOOL_KEYS or key.startswith('cats_'):
                result[key] = str(value).strip().lower() in ('1', 'true', 'yes', 'on')
            elif key in self._INT_KEYS:
                try:
                    result[key] = int(value)
                except (TypeError, ValueError):
                    result[key] = int(self.DEFAULTS[key])
            else:
                result[key] = value
        return result

    def _category_enabled(self, prefix: str, category: str) -> bool:
        return self.get_settings().get(f"cats_{prefix}_{category}", True)

    def should_emit_gui(self, category: str, level: int) -> bool:
        if level < self._gui_level:
            return False
        return self._category_enabled('gui', category)

    def should_emit_file(self, category: str, level: int) -> bool:
        if level <= self.TRACE:
            return False
        if str(self._settings.get('enabled', 'true')).lower() != 'true':
            return False
        if level < self._file_level:
            return False
        return self._category_enabled('file', category)

    def log_to_file(self, message: str, level: int = logging.INFO, category: str = "general") -> None:
        if str(self._settings.get('enabled', 'true')).lower() != 'true':
            return
        if not self.should_emit_file(category, level):
            return
        self._logger.log(level, self._strip_leading_time(message))


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, 'rb') as src, gzip.open(dest, 'wb') as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


_instance: Optional[AppLogger] = None
_instance_lock = threading.Lock()


def get_logger() -> AppLogger:
    global _instance
    if _instance is None:
        with _instance_lock:
            if _instance is None:
                _instance = AppLogger()
    return _instance
