from __future__ import annotations

import os
import pathlib
import random
import time
from typing import Iterable, List, Optional

from loguru import logger
from werkzeug.datastructures import FileStorage

from aurodiary.errors import UploadRejected
from aurodiary.exif_utils import extract_location_from_image
from aurodiary.models import PhotoRecord

ALLOWED_EXTENSIONS = ("jpeg", "jpg", "png", "gif", "webp")
MAX_FILES = 10
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
UNKNOWN_LOCATION = "未知地点"


def _extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def _is_allowed(file: FileStorage) -> bool:
    ext = _extension(file.filename).lstrip(".")
    mime = (file.mimetype or "").lower()
    return ext in ALLOWED_EXTENSIONS and any(t in mime for t in ALLOWED_EXTENSIONS)


def _stream_size(file: FileStorage) -> int:
    stream = file.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def stored_name(original: str) -> str:
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{_extension(original)}"


def validate_uploads(files: Iterable[FileStorage]) -> List[FileStorage]:
    accepted = [f for f in files if f and f.filename]
    if len(accepted) > MAX_FILES:
        raise UploadRejected(f"最多只能上传 {MAX_FILES} 张图片")
    for f in accepted:
        if not _is_allowed(f):
            raise UploadRejected("只支持图片格式 (jpeg, jpg, png, gif, webp)")
        if _stream_size(f) > MAX_FILE_SIZE:
            raise UploadRejected(f"图片 {f.filename} 超过 10MB")
    return accepted


def save_photos(
    files: Iterable[FileStorage],
    upload_dir: pathlib.Path,
    default_location: Optional[str] = None,
    use_geocoder: bool = False,
) -> List[PhotoRecord]:
    """Validate, store and describe uploaded photos, in upload order."""
    accepted = validate_uploads(files)
    upload_dir.mkdir(parents=True, exist_ok=True)

    records: List[PhotoRecord] = []
    for f in accepted:
        name = stored_name(f.filename)
        file_path = upload_dir / name
        f.save(str(file_path))

        detected = extract_location_from_image(str(file_path), use_geocoder=use_geocoder)
        records.append(PhotoRecord(
            filename=name,
            original_name=f.filename,
            path=f"/uploads/{name}",
            location=detected or default_location or UNKNOWN_LOCATION,
            local_path=file_path,
        ))
    logger.info("保存上传图片 {} 张", len(records))
    return records
