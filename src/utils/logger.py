"""
Unified logging entry point.

Every module logs through ``log()``. Messages get an HH:MM:SS timestamp, a
level (explicit or detected from the text) and a category (explicit or taken
from a leading ``[category:subtype]`` tag), then go to the rotating file log
and to any registered log viewers. With no viewer registered, messages that
pass the GUI filter are echoed to the console.
"""

import logging
import re
import sys
import threading
from datetime import datetime
from typing import Any, List, Optional, Tuple

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LEVEL_MAP = {
    'trace': TRACE,
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'warn': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL,
}

_TIME_RE = re.compile(r'^(\d{2}:\d{2}:\d{2})\s+')
_CATEGORY_RE = re.compile(r'^(\d{2}:\d{2}:\d{2}\s+)?\[([a-zA-Z_]+)(?::([a-zA-Z_]+))?\]\s*')

_log_viewers: List[Any] = []
_app_logger = None
_lock = threading.Lock()


def timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def register_log_viewer(viewer: Any) -> None:
    """Register a live viewer; it receives ``append_message(line, level, category)``."""
    with _lock:
        if viewer not in _log_viewers:
            _log_viewers.append(viewer)


def unregister_log_viewer(viewer: Any) -> None:
    with _lock:
        if viewer in _log_viewers:
            _log_viewers.remove(viewer)


def _get_app_logger():
    global _app_logger
    if _app_logger is None:
        from src.utils.logging import get_logger
        _app_logger = get_logger()
    return _app_logger


def _detect_level_from_message(message: str) -> Optional[str]:
    upper = message.upper()
    if 'CRITICAL' in upper:
        return 'critical'
    if 'ERROR' in upper:
        return 'error'
    if 'WARN' in upper:
        return 'warning'
    if 'DEBUG' in upper:
        return 'debug'
    if 'TRACE' in upper:
        return 'trace'
    return None


def _detect_category_from_message(message: str) -> Tuple[str, Optional[str], str]:
    """Return (category, subtype, message without the tag)."""
    match = _CATEGORY_RE.match(message)
    if not match:
        return 'general', None, message
    prefix = match.group(1) or ''
    cleaned = prefix + message[match.end():]
    return match.group(2).lower(), match.group(3), cleaned


def log(message: str, level: Optional[str] = None, category: Optional[str] = None) -> None:
    """Log a message to the file log and to live viewers."""
    detected_category, _subtype, cleaned = _detect_category_from_message(message)
    category = category or detected_category
    level = (level or _detect_level_from_message(cleaned) or 'info').lower()
    levelno = LEVEL_MAP.get(level, logging.INFO)

    time_match = _TIME_RE.match(cleaned)
    stamp = time_match.group(1) if time_match else timestamp()
    body = cleaned[time_match.end():] if time_match else cleaned

    level_name = logging.getLevelName(levelno)
    if levelno != logging.INFO and not body.upper().startswith(f"{level_name}:"):
        body = f"{level_name}: {body}"
    line = f"{stamp} {body}"

    try:
        app_logger = _get_app_logger()
        if app_logger.should_emit_file(category, levelno):
            app_logger.log_to_file(line, levelno, category)
        emit_gui = app_logger.should_emit_gui(category, levelno)
    except OSError as e:
        # Log directory unavailable (read-only home, disk full); keep the console
        print(f"{timestamp()} WARNING: file logging unavailable: {e}", file=sys.stderr)
        emit_gui = levelno >= logging.INFO

    if not emit_gui:
        return

    with _lock:
        viewers = list(_log_viewers)
    if not viewers:
        print(line, file=sys.stderr if levelno >= logging.WARNING else sys.stdout)
        return
    for viewer in viewers:
        try:
            viewer.append_message(line, level, category)
        except RuntimeError:
            # Qt widget deleted underneath us
            unregister_log_viewer(viewer)


def trace(message: str, category: Optional[str] = None) -> None:
    log(message, level='trace', category=category)


def debug(message: str, category: Optional[str] = None) -> None:
    log(message, level='debug', category=category)


def info(message: str, category: Optional[str] = None) -> None:
    log(message, level='info', category=category)


def warning(message: str, category: Optional[str] = None) -> None:
    log(message, level='warning', category=category)


def error(message: str, category: Optional[str] = None) -> None:
    log(message, level='error', category=category)


def critical(message: str, category: Optional[str] = None) -> None:
    log(message, level='critical', category=category)
