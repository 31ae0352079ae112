from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, jsonify, request
from loguru import logger

from aurodiary.llm import DEFAULT_STYLE, DIARY_STYLES, DiaryRequest
from aurodiary.models import DiaryPayload
from aurodiary.placeholders import append_markers, out_of_range_indices
from aurodiary.uploads import save_photos

bp = Blueprint("diary", __name__)


def _ctx():
    return current_app.extensions["aurodiary"]


@bp.get("/api/health")
def health():
    return jsonify({"status": "ok"})


@bp.get("/api/styles")
def styles():
    return jsonify({"styles": DIARY_STYLES})


# 编辑模式单独上传图片
@bp.post("/api/upload-photos")
def upload_photos():
    settings = _ctx().settings
    # 传了正文时，为新照片在末尾追加 [图片n]，编号接在已有照片之后
    content = request.form.get("content")
    try:
        existing = max(0, int(request.form.get("existingCount") or 0))
    except ValueError:
        return jsonify({"error": "existingCount 必须是整数"}), 400

    records = save_photos(
        request.files.getlist("photos"),
        settings.upload_dir,
        default_location=(request.form.get("location") or "").strip() or None,
        use_geocoder=settings.reverse_geocode,
    )
    body = {"success": True, "photos": [r.to_dict() for r in records]}
    if content is not None:
        body["content"] = append_markers(content, existing, len(records))
    return jsonify(body)


@bp.post("/api/generate-diary")
def generate_diary():
    ctx = _ctx()
    form = request.form
    description = (form.get("description") or "").strip()
    if not description:
        return jsonify({"error": "请提供文字描述"}), 400

    location = (form.get("location") or "").strip()
    diary_date = (form.get("date") or "").strip() or date.today().isoformat()
    style = (form.get("diaryStyle") or "").strip() or DEFAULT_STYLE
    mode = "polish" if form.get("mode") == "polish" else "ai"
    logger.info("收到生成请求: 风格={}, 模式={}, 地点={}", style, mode, location)

    photos = save_photos(
        request.files.getlist("photos"),
        ctx.settings.upload_dir,
        default_location=location or None,
        use_geocoder=ctx.settings.reverse_geocode,
    )
    result = ctx.writer.generate(DiaryRequest(
        description=description,
        location=location or "未指定",
        date=diary_date,
        photos=photos,
        diary_style=style,
        style_description=(form.get("styleDescription") or "").strip(),
        mode=mode,
        title=(form.get("title") or "").strip(),
    ))
    missing = out_of_range_indices(result["content"], len(photos))
    if missing:
        logger.warning("生成的正文引用了不存在的图片: {}", missing)

    return jsonify({
        "success": True,
        "diary": {
            "title": result["title"],
            "location": location or "未指定",
            "date": diary_date,
            "content": result["content"],
            "photos": [p.to_dict() for p in photos],
        },
    })


@bp.post("/api/save-to-feishu")
def save_to_feishu():
    ctx = _ctx()
    payload = DiaryPayload.model_validate(request.get_json(silent=True) or {})
    if not payload.title.strip() or not payload.content.strip():
        return jsonify({"error": "标题和内容不能为空"}), 400
    result = ctx.feishu.save_diary(payload.to_draft(ctx.settings.upload_dir))
    return jsonify(result)
