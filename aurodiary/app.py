from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, abort, jsonify, send_from_directory
from flask_cors import CORS
from loguru import logger
from pydantic import ValidationError

from aurodiary.config import Settings
from aurodiary.errors import ConfigError, FeishuError, LLMError, RateLimited, UploadRejected
from aurodiary.feishu import FeishuClient
from aurodiary.llm import DiaryWriter
from aurodiary.logging import init_logging
from aurodiary.routes import diary_bp, export_bp
from aurodiary.uploads import MAX_FILE_SIZE, MAX_FILES


@dataclass
class AppContext:
    settings: Settings
    writer: DiaryWriter
    feishu: FeishuClient


def create_app(
    settings: Optional[Settings] = None,
    writer: Optional[DiaryWriter] = None,
    feishu: Optional[FeishuClient] = None,
) -> Flask:
    settings = settings or Settings.from_env()
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_FILES * MAX_FILE_SIZE + 1024 * 1024
    CORS(app)

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    app.extensions["aurodiary"] = AppContext(
        settings=settings,
        writer=writer or DiaryWriter(settings),
        feishu=feishu or FeishuClient(settings),
    )

    app.register_blueprint(diary_bp)
    app.register_blueprint(export_bp)
    _register_error_handlers(app)

    @app.get("/uploads/<path:filename>")
    def uploaded_file(filename: str):
        return send_from_directory(settings.upload_dir, filename)

    # 生产环境托管前端打包后的文件
    @app.get("/")
    @app.get("/<path:path>")
    def frontend(path: str = ""):
        if path.startswith("api/") or not (settings.dist_dir / "index.html").is_file():
            abort(404)
        if path and (settings.dist_dir / path).is_file():
            return send_from_directory(settings.dist_dir, path)
        return send_from_directory(settings.dist_dir, "index.html")

    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(UploadRejected)
    def _upload_rejected(e: UploadRejected):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(ValidationError)
    def _bad_payload(e: ValidationError):
        return jsonify({"error": "请求数据格式错误", "message": e.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(LLMError)
    def _llm_failed(e: LLMError):
        logger.error("生成日记错误: {}", e)
        body = {"error": "生成日记失败", "message": str(e)}
        if isinstance(e, RateLimited) and e.retry_after_ms is not None:
            body["retry_after_ms"] = e.retry_after_ms
        return jsonify(body), e.status_code

    @app.errorhandler(FeishuError)
    @app.errorhandler(ConfigError)
    def _feishu_failed(e):
        logger.error("飞书保存失败: {}", e)
        return jsonify({"error": "保存到飞书失败", "message": str(e)}), 500

    @app.errorhandler(413)
    def _too_large(e):
        return jsonify({"error": "上传内容过大"}), 413


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    init_logging(settings.log_dir)
    app = create_app(settings)
    logger.info("服务器运行在 http://localhost:{}", settings.port)
    app.run(host="0.0.0.0", port=settings.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
