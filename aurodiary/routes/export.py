from __future__ import annotations

import io
from typing import Tuple

from flask import Blueprint, current_app, jsonify, request, send_file

from aurodiary.document import DocumentTree, assemble
from aurodiary.layout import DISPLAY_PROFILE, DOCUMENT_PROFILE, LayoutProfile
from aurodiary.models import DiaryDraft, DiaryPayload
from aurodiary.renderers import DocxRenderer, HtmlRenderer, ImageRenderer

bp = Blueprint("export", __name__, url_prefix="/api")

DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _tree(profile: LayoutProfile) -> Tuple[DocumentTree, DiaryDraft]:
    payload = DiaryPayload.model_validate(request.get_json(silent=True) or {})
    draft = payload.to_draft(current_app.extensions["aurodiary"].settings.upload_dir)
    return assemble(draft, profile=profile), draft


def _download_name(draft: DiaryDraft, tree: DocumentTree, ext: str) -> str:
    name = f"日记-{tree.title}"
    if draft.date:
        name += f"-{draft.date}"
    # 文件名里不能有路径分隔符
    return name.replace("/", "-").replace("\\", "-") + ext


@bp.post("/export/docx")
def export_docx():
    tree, draft = _tree(DOCUMENT_PROFILE)
    data = DocxRenderer().render(tree)
    return send_file(io.BytesIO(data), mimetype=DOCX_MIMETYPE, as_attachment=True,
                     download_name=_download_name(draft, tree, ".docx"))


@bp.post("/export/image")
def export_image():
    tree, draft = _tree(DISPLAY_PROFILE)
    settings = current_app.extensions["aurodiary"].settings
    data = ImageRenderer(font_path=settings.font_path).render(tree)
    return send_file(io.BytesIO(data), mimetype="image/png", as_attachment=True,
                     download_name=_download_name(draft, tree, ".png"))


@bp.post("/render")
def render_html():
    tree, _ = _tree(DISPLAY_PROFILE)
    return jsonify({"html": HtmlRenderer().render(tree)})
