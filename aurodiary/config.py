from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass
from typing import Mapping, Optional

from aurodiary.errors import ConfigError

DEFAULT_BASE_URL = "https://api.deepseek.com/v1"


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _base_url(env: Mapping[str, str]) -> str:
    base = (env.get("DEEPSEEK_BASE_URL") or "").strip()
    if base:
        return base.rstrip("/")
    # 兼容旧配置：DEEPSEEK_API_URL 写的是完整的 chat/completions 地址
    legacy = (env.get("DEEPSEEK_API_URL") or "").strip().rstrip("/")
    if legacy.endswith("/chat/completions"):
        legacy = legacy[: -len("/chat/completions")]
    return legacy or DEFAULT_BASE_URL


@dataclass(frozen=True)
class Settings:
    upload_dir: pathlib.Path
    dist_dir: pathlib.Path
    deepseek_api_key: str = ""
    deepseek_base_url: str = DEFAULT_BASE_URL
    deepseek_model: str = "deepseek-chat"
    llm_request_timeout: float = 60.0
    llm_throttle_seconds: float = 0.5
    llm_max_wait_seconds: float = 30.0
    feishu_app_id: str = ""
    feishu_app_secret: str = ""
    feishu_app_token: str = ""
    feishu_table_id: str = ""
    log_dir: Optional[pathlib.Path] = None
    font_path: Optional[str] = None
    reverse_geocode: bool = False
    port: int = 3001

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        log_dir = (env.get("AURODIARY_LOG_DIR") or "").strip()
        return cls(
            upload_dir=pathlib.Path(env.get("AURODIARY_UPLOAD_DIR") or "uploads").expanduser().resolve(),
            dist_dir=pathlib.Path(env.get("AURODIARY_DIST_DIR") or "dist").expanduser().resolve(),
            deepseek_api_key=(env.get("DEEPSEEK_API_KEY") or "").strip(),
            deepseek_base_url=_base_url(env),
            deepseek_model=env.get("DEEPSEEK_MODEL") or "deepseek-chat",
            llm_request_timeout=float(env.get("LLM_REQUEST_TIMEOUT") or 60),
            llm_throttle_seconds=float(env.get("LLM_THROTTLE_SECONDS") or 0.5),
            llm_max_wait_seconds=float(env.get("LLM_MAX_WAIT_SECONDS") or 30),
            feishu_app_id=(env.get("FEISHU_APP_ID") or "").strip(),
            feishu_app_secret=(env.get("FEISHU_APP_SECRET") or "").strip(),
            feishu_app_token=(env.get("FEISHU_APP_TOKEN") or "").strip(),
            feishu_table_id=(env.get("FEISHU_TABLE_ID") or "").strip(),
            log_dir=pathlib.Path(log_dir).expanduser() if log_dir else None,
            font_path=(env.get("AURODIARY_FONT_PATH") or "").strip() or None,
            reverse_geocode=_flag(env.get("AURODIARY_REVERSE_GEOCODE")),
            port=int(env.get("PORT") or 3001),
        )

    @property
    def feishu_configured(self) -> bool:
        return all((self.feishu_app_id, self.feishu_app_secret, self.feishu_app_token, self.feishu_table_id))

    def require_feishu(self) -> None:
        if not self.feishu_configured:
            raise ConfigError("飞书配置不完整，请检查 .env 文件")
