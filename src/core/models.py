"""
Data model for the upload pipeline.

Plain dataclasses shared by the orchestrator, the cache, the reporter and the
Qt bridge. Nothing here performs I/O except ``SourceFile.from_path``.
"""

import mimetypes
import os
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


class UploadStage(str, Enum):
    """Orchestrator state machine stages."""
    IDLE = "idle"
    PREPARING = "preparing"
    UPLOADING_IMAGE = "uploading_image"
    UPLOADING_THUMBNAIL = "uploading_thumbnail"
    SAVING_RECORD = "saving_record"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ConnectionSpeed(str, Enum):
    FAST = "fast"
    SLOW = "slow"
    OFFLINE = "offline"


class LogType(str, Enum):
    LOG = "log"
    ERROR = "error"
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"


LOG_ICONS = {
    LogType.LOG: "📝",
    LogType.ERROR: "❌",
    LogType.SUCCESS: "✅",
    LogType.WARNING: "⚠️",
    LogType.INFO: "ℹ️",
}


@dataclass(frozen=True)
class FileInfo:
    """File metadata as stored in the upload cache (never the bytes)."""
    name: str
    size: int
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileInfo':
        return cls(
            name=str(data.get('name', '')),
            size=int(data.get('size', 0)),
            type=str(data.get('type', '')),
        )


@dataclass
class SourceFile:
    """An image picked by the user, held in memory for the duration of a job."""
    name: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)

    def info(self) -> FileInfo:
        return FileInfo(name=self.name, size=self.size, type=self.content_type)

    @classmethod
    def from_path(cls, path: str) -> 'SourceFile':
        """Read a file from disk, guessing its MIME type from the extension."""
        with open(path, 'rb') as f:
            data = f.read()
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        return cls(name=os.path.basename(path), data=data, content_type=content_type)


@dataclass
class UploadCacheRecord:
    """Durable snapshot of a partially completed job.

    Valid only while younger than the cache TTL and owned by the current user.
    """
    user_id: str
    timestamp: int = 0
    file: Optional[FileInfo] = None
    title: str = ""
    description: str = ""
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @property
    def has_remote_progress(self) -> bool:
        return bool(self.image_url or self.thumbnail_url)

    def is_expired(self, ttl_seconds: float, now_ms: Optional[int] = None) -> bool:
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        return now_ms - self.timestamp >= ttl_seconds * 1000

    def matches_file(self, info: FileInfo) -> bool:
        if self.file is None:
            return True
        return self.file.name == info.name and self.file.size == info.size

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'timestamp': self.timestamp,
            'file': self.file.to_dict() if self.file else None,
            'title': self.title,
            'description': self.description,
            'imageUrl': self.image_url,
            'thumbnailUrl': self.thumbnail_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UploadCacheRecord':
        file_data = data.get('file')
        return cls(
            user_id=str(data['userId']),
            timestamp=int(data.get('timestamp', 0)),
            file=FileInfo.from_dict(file_data) if file_data else None,
            title=data.get('title') or "",
            description=data.get('description') or "",
            image_url=data.get('imageUrl'),
            thumbnail_url=data.get('thumbnailUrl'),
        )


@dataclass
class UploadJob:
    """One orchestrator invocation. ``file`` is fixed for the job's lifetime."""
    file: SourceFile
    title: str
    description: str
    user_id: str
    thumbnail_blob: Optional[bytes] = None
    upload_data: Optional[bytes] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    resumed_from_cache: bool = False


@dataclass
class ConnectionState:
    online: bool = True
    speed: ConnectionSpeed = ConnectionSpeed.FAST

    @property
    def can_upload(self) -> bool:
        return self.online and self.speed != ConnectionSpeed.OFFLINE


@dataclass
class ProgressState:
    uploading: bool = False
    progress: int = 0
    display_progress: float = 0.0
    status: str = ""
    error: Optional[str] = None
    stage: UploadStage = UploadStage.IDLE
    can_resume: bool = False


@dataclass
class LogEntry:
    message: str
    type: LogType
    time: str

    @property
    def icon(self) -> str:
        return LOG_ICONS[self.type]

    def format(self) -> str:
        return f"[{self.time}] {self.icon} {self.message}"


@dataclass
class UploadResult:
    """Structured outcome of ``UploadOrchestrator.upload_file``."""
    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None
    retryable: bool = False
    resumable: bool = False
    cancelled: bool = False
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    record: Optional[Dict[str, Any]] = None
    snapshot: Optional[UploadCacheRecord] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'success': self.success}
        if self.error is not None:
            result['error'] = self.error
        if self.success:
            result['imageUrl'] = self.image_url
            result['thumbnailUrl'] = self.thumbnail_url
        return result
