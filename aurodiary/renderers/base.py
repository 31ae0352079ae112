from __future__ import annotations

import io

from PIL import Image

from aurodiary.errors import RenderIOError
from aurodiary.models import PhotoRecord

# UnidentifiedImageError 是 OSError 的子类
DECODE_ERRORS = (OSError, ValueError, Image.DecompressionBombError)


def read_photo_bytes(photo: PhotoRecord) -> bytes:
    """Read a photo's backing file, raising ``RenderIOError`` when it's gone."""
    if photo.local_path is None:
        raise RenderIOError(photo.path, "没有本地文件")
    try:
        return photo.local_path.read_bytes()
    except OSError as e:
        raise RenderIOError(str(photo.local_path), e.strerror or str(e)) from e


def load_photo_bytes(photo: PhotoRecord) -> bytes:
    """Like ``read_photo_bytes`` but also requires Pillow to decode the pixels.

    Every renderer goes through this, so a photo either appears in all
    outputs or in none of them.
    """
    data = read_photo_bytes(photo)
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
    except DECODE_ERRORS as e:
        raise RenderIOError(photo.path, "无法解码图片") from e
    return data
