from __future__ import annotations

import io
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from loguru import logger
from PIL import Image, ImageDraw, ImageFont

from aurodiary.document import CaptionBlock, DocumentTree, MetadataBlock, PhotoBlock, TextBlock, TitleBlock
from aurodiary.errors import RenderIOError
from aurodiary.renderers.base import DECODE_ERRORS, load_photo_bytes

BACKGROUND = "#0d1426"
TITLE_COLOR = "#ffffff"
META_COLOR = "#9aa4b8"
TEXT_COLOR = "#e6e9f0"
CAPTION_COLOR = "#4fc3f7"

# 支持中文的常见字体，按顺序尝试
FONT_CANDIDATES = [
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/wqy/wqy-microhei.ttc",
    "/usr/share/fonts/truetype/wqy/wqy-zenhei.ttc",
    "/System/Library/Fonts/PingFang.ttc",
    "/System/Library/Fonts/STHeiti Light.ttc",
    "C:/Windows/Fonts/msyh.ttc",
    "C:/Windows/Fonts/simhei.ttf",
]


def load_font(size: int, font_path: Optional[str] = None) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    paths: Sequence[str] = ([font_path] if font_path else []) + FONT_CANDIDATES
    for path in paths:
        if not os.path.exists(path):
            continue
        try:
            return ImageFont.truetype(path, size)
        except OSError as e:
            logger.debug("字体加载失败 {}: {}", path, e)
    logger.warning("未找到支持中文的 TrueType 字体，使用 Pillow 默认字体")
    return ImageFont.load_default(size=size)


def wrap_text(text: str, font, max_width: int) -> List[str]:
    """Wrap by character; CJK text has no spaces to break on."""
    lines: List[str] = []
    current = ""
    for ch in text:
        candidate = current + ch
        if current and font.getlength(candidate) > max_width:
            lines.append(current)
            current = ch
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


@dataclass
class _Op:
    kind: str                       # "text" | "image"
    height: int
    lines: Tuple[str, ...] = ()
    font: object = None
    color: str = TEXT_COLOR
    center: bool = False
    line_height: int = 0
    image: Optional[Image.Image] = None


class ImageRenderer:
    """Render a document tree as one long PNG, like a phone screenshot."""

    def __init__(self, page_width: int = 500, scale: int = 2, padding: int = 40, font_path: Optional[str] = None) -> None:
        self.page_width = page_width
        self.scale = scale
        self.padding = padding
        self.font_path = font_path

    def _s(self, v: float) -> int:
        return int(round(v * self.scale))

    def render(self, tree: DocumentTree) -> bytes:
        width = self._s(self.page_width)
        content_w = width - 2 * self._s(self.padding)
        title_font = load_font(self._s(26), self.font_path)
        meta_font = load_font(self._s(13), self.font_path)
        body_font = load_font(self._s(16), self.font_path)
        caption_font = load_font(self._s(12), self.font_path)

        ops: List[_Op] = []
        failed: Set[int] = set()
        for block in tree:
            if isinstance(block, TitleBlock):
                ops.append(self._text_op(block.text, title_font, content_w, TITLE_COLOR, True, 1.4, after=16))
            elif isinstance(block, MetadataBlock):
                meta = f"日期：{block.date}    地点：{block.location}"
                ops.append(self._text_op(meta, meta_font, content_w, META_COLOR, True, 1.5, after=24))
            elif isinstance(block, TextBlock):
                ops.append(self._text_op(block.text, body_font, content_w, TEXT_COLOR, False, 1.8, after=12))
            elif isinstance(block, PhotoBlock):
                try:
                    img = self._load_photo(block, content_w)
                except RenderIOError as e:
                    logger.warning("长图生成：跳过图片 [图片{}]: {}", block.index, e)
                    failed.add(block.index)
                    continue
                ops.append(_Op("image", img.height + self._s(8), image=img))
            elif isinstance(block, CaptionBlock):
                if block.photo_index in failed:
                    continue
                ops.append(self._text_op(block.text, caption_font, content_w, CAPTION_COLOR, True, 1.5, after=16))

        pad = self._s(self.padding)
        total_h = pad * 2 + sum(op.height for op in ops)
        canvas = Image.new("RGB", (width, total_h), BACKGROUND)
        draw = ImageDraw.Draw(canvas)

        y = pad
        for op in ops:
            if op.kind == "image":
                x = pad + (content_w - op.image.width) // 2
                canvas.paste(op.image, (x, y))
                op.image.close()
            else:
                ly = y
                for line in op.lines:
                    lw = op.font.getlength(line)
                    x = pad + int((content_w - lw) / 2) if op.center else pad
                    draw.text((x, ly), line, font=op.font, fill=op.color)
                    ly += op.line_height
            y += op.height

        buf = io.BytesIO()
        canvas.save(buf, format="PNG")
        logger.info("长图生成成功: {}x{}", width, total_h)
        return buf.getvalue()

    def _text_op(self, text, font, max_width, color, center, spacing, after) -> _Op:
        lines = tuple(wrap_text(text, font, max_width))
        line_h = int(font.size * spacing) if hasattr(font, "size") else self._s(20)
        return _Op("text", line_h * len(lines) + self._s(after), lines=lines, font=font,
                   color=color, center=center, line_height=line_h)

    def _load_photo(self, block: PhotoBlock, max_width: int) -> Image.Image:
        data = load_photo_bytes(block.photo)
        try:
            with Image.open(io.BytesIO(data)) as src:
                img = src.convert("RGB")
        except DECODE_ERRORS as e:
            raise RenderIOError(block.photo.path, "无法解码图片") from e
        w, h = self._s(block.width), self._s(block.height)
        if w > max_width:
            # 画布比排版宽度窄时整体等比缩小
            h = max(1, round(h * max_width / w))
            w = max_width
        return img.resize((w, h), Image.LANCZOS)
