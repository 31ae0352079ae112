"""Split diary text on ``[图片n]`` markers.

The marker grammar is a stored format and stays fixed. Anything that
only looks like a marker (``[图片]``, ``[图片a]``, ``[ 图片1]``) stays text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Union

MARKER_RE = re.compile(r"\[图片([0-9]+)\]")

# 超过这个位数的编号不可能对应照片，统一当作越界处理
MAX_INDEX_DIGITS = 9
OUT_OF_RANGE = 10 ** MAX_INDEX_DIGITS


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class PhotoRef:
    index: int      # 1-based, as written in the text


Segment = Union[Text, PhotoRef]


def _index(digits: str) -> int:
    digits = digits.lstrip("0") or "0"
    if len(digits) > MAX_INDEX_DIGITS:
        return OUT_OF_RANGE
    return int(digits)


def marker(index: int) -> str:
    return f"[图片{index}]"


def tokenize(text: Optional[str], photo_count: Optional[int] = None) -> List[Segment]:
    """Return the text as an ordered list of ``Text`` and ``PhotoRef`` segments.

    ``photo_count`` is accepted for callers that want to validate afterwards;
    splitting never depends on it.
    """
    segments: List[Segment] = []
    if not text:
        return segments

    pos = 0
    for m in MARKER_RE.finditer(text):
        if m.start() > pos:
            segments.append(Text(text[pos:m.start()]))
        segments.append(PhotoRef(_index(m.group(1))))
        pos = m.end()
    if pos < len(text):
        segments.append(Text(text[pos:]))
    return segments


def find_marker_indices(text: Optional[str]) -> List[int]:
    return [seg.index for seg in tokenize(text) if isinstance(seg, PhotoRef)]


def out_of_range_indices(text: Optional[str], photo_count: int) -> List[int]:
    return [i for i in find_marker_indices(text) if not 1 <= i <= photo_count]


def append_markers(text: str, start: int, count: int) -> str:
    """Append markers for ``count`` photos newly added after photo ``start``.

    Used when photos are added to an existing diary in edit mode.
    """
    tags = "".join(f"\n\n{marker(start + i + 1)}\n" for i in range(count))
    return (text or "") + tags
