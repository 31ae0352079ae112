from __future__ import annotations

from typing import Dict, List

from jinja2 import Environment, PackageLoader, select_autoescape
from loguru import logger

from aurodiary.document import CaptionBlock, DocumentTree, MetadataBlock, PhotoBlock, TextBlock, TitleBlock
from aurodiary.errors import RenderIOError
from aurodiary.renderers.base import load_photo_bytes

_env = Environment(
    loader=PackageLoader("aurodiary", "templates"),
    autoescape=select_autoescape(["html"]),
)


class HtmlRenderer:
    """Render a document tree as an HTML fragment for the preview pane."""

    template_name = "diary.html"

    def render(self, tree: DocumentTree) -> str:
        return _env.get_template(self.template_name).render(blocks=self.view_blocks(tree))

    def view_blocks(self, tree: DocumentTree) -> List[Dict]:
        out: List[Dict] = []
        figures: Dict[int, Dict] = {}
        for block in tree:
            if isinstance(block, TitleBlock):
                out.append({"kind": "title", "text": block.text})
            elif isinstance(block, MetadataBlock):
                out.append({"kind": "meta", "date": block.date, "location": block.location})
            elif isinstance(block, TextBlock):
                out.append({"kind": "text", "text": block.text})
            elif isinstance(block, PhotoBlock):
                try:
                    load_photo_bytes(block.photo)
                except RenderIOError as e:
                    logger.warning("预览：跳过图片 [图片{}]: {}", block.index, e)
                    continue
                fig = {
                    "kind": "photo",
                    "index": block.index,
                    "src": block.photo.path,
                    "alt": block.photo.original_name,
                    "width": block.width,
                    "height": block.height,
                    "caption": None,
                }
                figures[block.index] = fig
                out.append(fig)
            elif isinstance(block, CaptionBlock):
                # 图片读不到时说明文字一起省略
                if block.photo_index in figures:
                    figures[block.photo_index]["caption"] = block.text
        return out

