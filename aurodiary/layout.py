from __future__ import annotations

import math
import pathlib
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Set, Tuple

from loguru import logger
from PIL import Image, UnidentifiedImageError

from aurodiary.errors import DuplicatePhoto, MissingPhoto
from aurodiary.models import PhotoRecord
from aurodiary.placeholders import PhotoRef

Probe = Callable[[pathlib.Path], Optional[Tuple[int, int]]]


@dataclass(frozen=True)
class LayoutProfile:
    max_width: int
    max_height: int
    default_width: int
    default_height: int


@dataclass(frozen=True)
class LayoutSize:
    width: int
    height: int


# 单位：Word 里按 96dpi 像素换算，网页里就是 CSS px
DOCUMENT_PROFILE = LayoutProfile(max_width=450, max_height=600, default_width=450, default_height=300)
DISPLAY_PROFILE = LayoutProfile(max_width=400, max_height=600, default_width=400, default_height=300)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def compute_display_size(
    width: Optional[int],
    height: Optional[int],
    profile: LayoutProfile = DOCUMENT_PROFILE,
) -> LayoutSize:
    """Fit (width, height) into the profile's box, keeping the aspect ratio."""
    if not width or not height or width <= 0 or height <= 0:
        return LayoutSize(profile.default_width, profile.default_height)

    ratio = height / width
    target_w = profile.max_width
    target_h = _round_half_up(target_w * ratio)
    if target_h > profile.max_height:
        target_h = profile.max_height
        target_w = _round_half_up(target_h / ratio)
    return LayoutSize(max(1, min(target_w, profile.max_width)), max(1, target_h))


def probe_dimensions(path: Optional[pathlib.Path]) -> Optional[Tuple[int, int]]:
    """Best-effort intrinsic pixel size; ``None`` when the file can't be read."""
    if path is None:
        return None
    try:
        # Image.open 只读文件头，不解码像素
        with Image.open(path) as img:
            w, h = img.size
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        logger.debug("读取图片尺寸失败 {}: {}", path, e)
        return None
    if w <= 0 or h <= 0:
        return None
    return w, h


def intrinsic_size(photo: PhotoRecord, probe: Probe = probe_dimensions) -> Optional[Tuple[int, int]]:
    if photo.width and photo.height and photo.width > 0 and photo.height > 0:
        return photo.width, photo.height
    found = probe(photo.local_path)
    if found:
        photo.width, photo.height = found
    return found


class LayoutResolver:
    """Maps markers to photos for one document.

    Each photo is placed at most once; a later marker for the same index
    raises ``DuplicatePhoto`` so the first occurrence keeps the photo.
    """

    def __init__(
        self,
        photos: Sequence[Optional[PhotoRecord]],
        profile: LayoutProfile = DOCUMENT_PROFILE,
        probe: Probe = probe_dimensions,
    ) -> None:
        self.photos = photos
        self.profile = profile
        self.probe = probe
        self._used: Set[int] = set()

    def lookup(self, ref: PhotoRef) -> PhotoRecord:
        pos = ref.index - 1
        if pos < 0 or pos >= len(self.photos):
            raise MissingPhoto(ref.index)
        photo = self.photos[pos]
        if photo is None or not (photo.path or photo.local_path):
            raise MissingPhoto(ref.index)
        if pos in self._used:
            raise DuplicatePhoto(ref.index)
        self._used.add(pos)
        return photo

    def size_for(self, photo: PhotoRecord) -> LayoutSize:
        found = intrinsic_size(photo, self.probe)
        if not found:
            return compute_display_size(None, None, self.profile)
        return compute_display_size(found[0], found[1], self.profile)

    def resolve(self, ref: PhotoRef) -> Tuple[PhotoRecord, LayoutSize]:
        photo = self.lookup(ref)
        return photo, self.size_for(photo)
