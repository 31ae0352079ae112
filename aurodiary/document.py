"""Build the renderer-agnostic document tree for a diary.

Every export path (Word, long image, HTML preview) renders the tree produced
here, so ordering and photo de-duplication are decided exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from loguru import logger

from aurodiary.errors import PlacementError
from aurodiary.layout import DOCUMENT_PROFILE, LayoutProfile, LayoutResolver, Probe, probe_dimensions
from aurodiary.models import DiaryDraft, PhotoRecord
from aurodiary.placeholders import Text, tokenize

UNTITLED = "无标题"
UNSET = "未设置"


@dataclass(frozen=True)
class TitleBlock:
    text: str


@dataclass(frozen=True)
class MetadataBlock:
    date: str
    location: str


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class PhotoBlock:
    index: int
    photo: PhotoRecord
    width: int
    height: int


@dataclass(frozen=True)
class CaptionBlock:
    text: str
    photo_index: int


Block = Union[TitleBlock, MetadataBlock, TextBlock, PhotoBlock, CaptionBlock]


@dataclass
class DocumentTree:
    blocks: List[Block] = field(default_factory=list)

    def __iter__(self):
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    def photo_blocks(self) -> List[PhotoBlock]:
        return [b for b in self.blocks if isinstance(b, PhotoBlock)]

    @property
    def title(self) -> str:
        for b in self.blocks:
            if isinstance(b, TitleBlock):
                return b.text
        return UNTITLED


def split_lines(text: str) -> List[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def assemble(
    draft: DiaryDraft,
    profile: LayoutProfile = DOCUMENT_PROFILE,
    probe: Probe = probe_dimensions,
) -> DocumentTree:
    tree = DocumentTree()
    tree.blocks.append(TitleBlock((draft.title or "").strip() or UNTITLED))
    tree.blocks.append(MetadataBlock(
        date=(draft.date or "").strip() or UNSET,
        location=(draft.location or "").strip() or UNSET,
    ))

    resolver = LayoutResolver(draft.photos, profile=profile, probe=probe)
    for seg in tokenize(draft.content, len(draft.photos)):
        if isinstance(seg, Text):
            tree.blocks.extend(TextBlock(line) for line in split_lines(seg.text))
            continue
        try:
            photo, size = resolver.resolve(seg)
        except PlacementError as e:
            logger.debug("跳过图片标记: {}", e)
            continue
        tree.blocks.append(PhotoBlock(seg.index, photo, size.width, size.height))
        caption = _caption_for(photo)
        if caption:
            tree.blocks.append(CaptionBlock(caption, seg.index))

    return tree


def _caption_for(photo: PhotoRecord) -> Optional[str]:
    loc = (photo.location or "").strip()
    return f"📍 {loc}" if loc else None
