from aurodiary.renderers.base import load_photo_bytes, read_photo_bytes
from aurodiary.renderers.docx_renderer import DocxRenderer
from aurodiary.renderers.html_renderer import HtmlRenderer
from aurodiary.renderers.image_renderer import ImageRenderer

__all__ = ["DocxRenderer", "HtmlRenderer", "ImageRenderer", "load_photo_bytes", "read_photo_bytes"]
