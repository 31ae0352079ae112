from __future__ import annotations

import io
from typing import Set

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.image.exceptions import UnrecognizedImageError
from docx.image.image import Image as DocxImage
from docx.shared import Inches, Pt, RGBColor
from loguru import logger
from PIL import Image as PILImage

from aurodiary.document import CaptionBlock, DocumentTree, MetadataBlock, PhotoBlock, TextBlock, TitleBlock
from aurodiary.errors import RenderIOError
from aurodiary.renderers.base import load_photo_bytes

META_COLOR = RGBColor(0x66, 0x66, 0x66)
CAPTION_COLOR = RGBColor(0x4F, 0xC3, 0xF7)
PX_PER_INCH = 96


def _px(units: int) -> int:
    return Inches(units / PX_PER_INCH)


def _to_png(data: bytes) -> bytes:
    buf = io.BytesIO()
    with PILImage.open(io.BytesIO(data)) as img:
        img.convert("RGBA").save(buf, format="PNG")
    return buf.getvalue()


class DocxRenderer:
    """Render a document tree into a .docx file."""

    body_size = Pt(14)
    caption_size = Pt(10)

    def render(self, tree: DocumentTree) -> bytes:
        doc = Document()
        failed: Set[int] = set()

        for block in tree:
            if isinstance(block, TitleBlock):
                heading = doc.add_heading(block.text, level=1)
                heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
                heading.paragraph_format.space_after = Pt(10)
            elif isinstance(block, MetadataBlock):
                self._add_metadata(doc, block)
            elif isinstance(block, TextBlock):
                para = doc.add_paragraph()
                run = para.add_run(block.text)
                run.font.size = self.body_size
                para.paragraph_format.space_after = Pt(7.5)
            elif isinstance(block, PhotoBlock):
                try:
                    self._add_photo(doc, block)
                except RenderIOError as e:
                    logger.warning("Word 生成：跳过图片 [图片{}]: {}", block.index, e)
                    failed.add(block.index)
            elif isinstance(block, CaptionBlock):
                if block.photo_index in failed:
                    continue
                para = doc.add_paragraph()
                para.alignment = WD_ALIGN_PARAGRAPH.CENTER
                run = para.add_run(block.text)
                run.font.size = self.caption_size
                run.font.color.rgb = CAPTION_COLOR
                para.paragraph_format.space_after = Pt(10)

        buf = io.BytesIO()
        doc.save(buf)
        data = buf.getvalue()
        logger.info("Word 文档生成成功: {} 字节, 图片 {} 张", len(data), len(tree.photo_blocks()) - len(failed))
        return data

    def _add_metadata(self, doc, block: MetadataBlock) -> None:
        para = doc.add_paragraph()
        para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        for text in (f"日期：{block.date}", "    ", f"地点：{block.location}"):
            run = para.add_run(text)
            run.font.color.rgb = META_COLOR
        para.paragraph_format.space_after = Pt(20)

    def _add_photo(self, doc, block: PhotoBlock) -> None:
        data = load_photo_bytes(block.photo)
        try:
            DocxImage.from_blob(data)
        except UnrecognizedImageError:
            # Word 不认识的格式（如 webp）转成 PNG 再插入
            data = _to_png(data)

        para = doc.add_paragraph()
        para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        para.paragraph_format.space_before = Pt(10)
        para.paragraph_format.space_after = Pt(5)
        para.add_run().add_picture(io.BytesIO(data), width=_px(block.width), height=_px(block.height))
