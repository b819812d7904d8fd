"""Local file storage for photos, video, audio and documents sent with reports."""

import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

from tanggap.db.models import MediaType

logger = logging.getLogger(__name__)

MB = 1024 * 1024

SUBDIRECTORIES = {
    MediaType.IMAGE: "images",
    MediaType.VIDEO: "videos",
    MediaType.AUDIO: "audio",
    MediaType.DOCUMENT: "documents",
}

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/3gpp": ".3gp",
    "video/quicktime": ".mov",
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/amr": ".amr",
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "text/plain": ".txt",
}


class MediaTooLargeError(Exception):
    """Raised when a file exceeds the size limit for its media type."""


@dataclass
class StoredMedia:
    file_name: str
    file_path: str  # relative to the storage root
    file_size: int
    mime_type: str | None


def extension_for(mime_type: str | None) -> str:
    if not mime_type:
        return ".bin"
    # "audio/ogg; codecs=opus" -> "audio/ogg"
    base = mime_type.split(";")[0].strip().lower()
    return MIME_EXTENSIONS.get(base, ".bin")


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.2f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.2f} GB"


class MediaStore:
    def __init__(self, root: str | Path | None = None, limits: dict[MediaType, int] | None = None):
        from tanggap.config import settings

        self.root = Path(root or settings.media_path).expanduser()
        self.limits = limits or {
            MediaType.IMAGE: settings.max_image_size_mb * MB,
            MediaType.VIDEO: settings.max_video_size_mb * MB,
            MediaType.AUDIO: settings.max_audio_size_mb * MB,
            MediaType.DOCUMENT: settings.max_document_size_mb * MB,
        }

    def ensure_directories(self) -> None:
        for subdir in SUBDIRECTORIES.values():
            (self.root / subdir).mkdir(parents=True, exist_ok=True)

    def save(self, content: bytes, media_type: MediaType, mime_type: str | None) -> StoredMedia:
        """Write content under the type's subdirectory.

        Raises:
            MediaTooLargeError: If content exceeds the limit for media_type.
        """
        limit = self.limits.get(media_type)
        if limit is not None and len(content) > limit:
            raise MediaTooLargeError(
                f"{media_type.value} of {format_bytes(len(content))} exceeds {format_bytes(limit)}"
            )

        subdir = SUBDIRECTORIES.get(media_type, "documents")
        file_name = f"{int(time.time() * 1000)}_{secrets.token_hex(4)}{extension_for(mime_type)}"
        target_dir = self.root / subdir
        target_dir.mkdir(parents=True, exist_ok=True)
        (target_dir / file_name).write_bytes(content)

        logger.info(f"Stored {media_type.value} {file_name} ({format_bytes(len(content))})")
        return StoredMedia(
            file_name=file_name,
            file_path=f"{subdir}/{file_name}",
            file_size=len(content),
            mime_type=mime_type,
        )

    def full_path(self, relative_path: str) -> Path:
        """Resolve a stored relative path, refusing anything outside the root."""
        root = self.root.resolve()
        path = (root / relative_path).resolve()
        if not path.is_relative_to(root):
            raise ValueError(f"Path escapes media root: {relative_path}")
        return path

    def delete(self, relative_path: str) -> bool:
        path = self.full_path(relative_path)
        if not path.exists():
            logger.warning(f"Media file already gone: {relative_path}")
            return False
        path.unlink()
        logger.info(f"Deleted media file {relative_path}")
        return True

    def storage_stats(self) -> dict:
        stats: dict = {"total_files": 0, "total_size": 0, "by_type": {}}
        for media_type, subdir in SUBDIRECTORIES.items():
            directory = self.root / subdir
            files = [p for p in directory.iterdir() if p.is_file()] if directory.exists() else []
            size = sum(p.stat().st_size for p in files)
            stats["by_type"][media_type.value] = {
                "count": len(files),
                "size": size,
                "size_formatted": format_bytes(size),
            }
            stats["total_files"] += len(files)
            stats["total_size"] += size
        stats["total_size_formatted"] = format_bytes(stats["total_size"])
        return stats


_store: MediaStore | None = None


def get_media_store() -> MediaStore:
    global _store
    if _store is None:
        _store = MediaStore()
    return _store
