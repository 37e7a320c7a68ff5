"""
Media storage for avatars, cover images, videos and thumbnails.

Uploaded files are written under the configured upload directory and
served back through StaticFiles at ``media_base_url``. Callers only keep the
returned url and the opaque ``publicId``; the latter is all ``delete``
needs, so the storage backend can change without touching the documents.
"""

import os
import shutil
from typing import Optional

import structlog
from bson import ObjectId
from fastapi import UploadFile

from errors import BadRequest, InternalError
from schemas import MediaAsset

logger = structlog.get_logger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".ogg", ".mkv")

FOLDERS = {
    "image": ("images", IMAGE_EXTENSIONS, ".jpg"),
    "video": ("videos", VIDEO_EXTENSIONS, ".mp4"),
}


class MediaStore:
    def __init__(self, root: str, base_url: str = "/static"):
        self.root = root
        self.base_url = base_url.rstrip("/")
        for folder, _, _ in FOLDERS.values():
            os.makedirs(os.path.join(self.root, folder), exist_ok=True)

    def _check_type(self, file: UploadFile, kind: str) -> str:
        _, extensions, default_ext = FOLDERS[kind]
        ext = os.path.splitext(file.filename or "")[1].lower()
        content_type = file.content_type or ""
        if not content_type.startswith(f"{kind}/") and ext not in extensions:
            raise BadRequest(f"Unsupported file type for {file.filename or 'upload'}: expected {kind}")
        return ext if ext in extensions else default_ext

    def upload(self, file: UploadFile, kind: str, duration: Optional[float] = None) -> MediaAsset:
        ext = self._check_type(file, kind)
        folder = FOLDERS[kind][0]
        public_id = f"{folder}/{ObjectId()}{ext}"
        dest_path = os.path.join(self.root, public_id)
        try:
            with open(dest_path, "wb") as f:
                shutil.copyfileobj(file.file, f)
        except OSError as e:
            logger.error("media_upload_failed", public_id=public_id, error=str(e))
            raise InternalError(f"Failed to store {kind} file")
        return MediaAsset(url=f"{self.base_url}/{public_id}", publicId=public_id, duration=duration)

    def delete(self, public_id: Optional[str]) -> bool:
        if not public_id:
            return False
        path = os.path.normpath(os.path.join(self.root, public_id))
        if not path.startswith(os.path.normpath(self.root) + os.sep):
            logger.warning("media_delete_rejected", public_id=public_id)
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("media_delete_failed", public_id=public_id, error=str(e))
            return False
        return True
