"""DeepSeek 日记生成（OpenAI 兼容接口）"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Optional, Sequence, Tuple

from loguru import logger
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    OpenAI,
    PermissionDeniedError,
    RateLimitError,
)

from aurodiary.config import Settings
from aurodiary.errors import AuthError, MalformedResponse, RateLimited, ServiceUnavailable
from aurodiary.models import PhotoRecord

# ---------------- 风格 ----------------

DIARY_STYLES = [
    {"title": "游记", "description": "以空间移动为线索，强调感官体验与独特见闻，记录“此地此刻”的发现与感触。"},
    {"title": "日常", "description": "捕捉平凡生活中的细微波动与内心涟漪，于琐事中寻找意义与情绪的真实记录。"},
    {"title": "文学/诗意", "description": "运用意象、隐喻与跳跃节奏，以高度凝练的语言封装情感与哲思，追求瞬间的美感凝结。"},
    {"title": "古诗", "description": "以古典诗词的格律与意境抒写现代心境，实现传统形式与当代灵魂的融合与对话。"},
    {"title": "幽默", "description": "通过自嘲、夸张与意外转折，将生活的尴尬与荒诞转化为轻松的笑点与喜剧性叙事。"},
    {"title": "严肃", "description": "用于深度自我对话、事件剖析或哲学思辨，笔调冷静、结构清晰、内省而真挚。"},
]
DEFAULT_STYLE = DIARY_STYLES[0]["title"]


def style_description(title: str) -> str:
    for style in DIARY_STYLES:
        if style["title"] == title:
            return style["description"]
    return ""


@dataclass
class DiaryRequest:
    description: str
    location: str = "未指定"
    date: str = ""
    photos: Sequence[PhotoRecord] = field(default_factory=list)
    diary_style: str = DEFAULT_STYLE
    style_description: str = ""
    mode: str = "ai"            # "ai" 自动生成 / "polish" 润色
    title: str = ""


# ---------------- 提示词 ----------------

def build_prompts(req: DiaryRequest) -> Tuple[str, str]:
    style = req.diary_style or DEFAULT_STYLE
    style_desc = req.style_description or style_description(style)

    if req.mode == "polish":
        system = f"""你是一个专业的日记润色助手。用户的任务是根据他写的一段原话，进行文学润色，使其更符合【{style}】风格（核心要求：{style_desc}）。
要求：
1. 保持用户原意，不要虚构不存在的事实。
2. 优化语言表达，使其更自然、生动。
3. 如果用户提供了标题，请优化它；如果没提供，请根据内容起一个。
4. 必须包含用户提到的关键信息（时间、地点、事件）。
5. 必须在正文中合理插入 [图片n] 标签（n为照片索引，从1开始），每张照片仅限一次。"""
        photo_line = ""
        if req.photos:
            photo_line = "照片信息：" + "; ".join(
                f"图片{i + 1} ({p.original_name})" for i, p in enumerate(req.photos))
        user = f"""请润色以下日记内容：
日期：{req.date}
地点：{req.location}
原定标题：{req.title or '无'}
用户原文：{req.description}
{photo_line}

请严格按照以下格式输出：
标题：润色后的标题
正文：润色后的正文"""
        return system, user

    system = f"""你是一个多才多艺的日记写手。根据用户提供的信息，生成一篇极具感染力的内容。要求：
1. 严格遵守用户选择的【{style}】风格，其核心要求是：{style_desc}
2. 语言要生动形象，富有情感，避免机械化的陈述。
3. 包含关键信息（时间、地点、人物、事件），用于以后长久的回忆。
4. 日记要有标题和正文两部分。
5. 正文要自然地融入日期、地点、照片等信息。
6. 在正文中，如果提到某个照片，请用 "[图片n]" 的形式（n为照片的索引，从1开始）来指代照片。
7. 每张照片在正文中只能被指代一次。"""
    photo_line = ""
    if req.photos:
        photo_line = "照片信息：" + "； ".join(
            f"图片{i + 1} ({p.original_name})，地点: {p.location or '未识别'}" for i, p in enumerate(req.photos))
    user = f"""请根据以下信息生成一篇日记：

日期：{req.date}
地点：{req.location}
用户描述：{req.description}
{photo_line}
日记风格：{style}

请严格按照以下格式生成日记（每行单独显示）：
标题：你的标题
正文：你的正文内容

正文要生动形象，包含关键信息以便以后回忆。"""
    return system, user


# ---------------- 解析 ----------------

DEFAULT_TITLE = "今日日记"
TITLE_RE = re.compile(r"标题[：:]\s*([^\n]+)")
BODY_RE = re.compile(r"正文[：:]\s*([\s\S]+)")
TITLE_LINE_RE = re.compile(r"标题[：:].+?(?:\n|$)")


def parse_diary_response(content: str) -> Tuple[str, str]:
    title = DEFAULT_TITLE
    m = TITLE_RE.search(content)
    if m:
        title = m.group(1).strip()

    m = BODY_RE.search(content)
    if m:
        body = m.group(1).strip()
    else:
        body = TITLE_LINE_RE.sub("", content, count=1).strip()
    return title or DEFAULT_TITLE, body or content


# ---------------- 调用 ----------------

class DiaryWriter:
    temperature = 0.7
    max_tokens = 2000

    def __init__(
        self,
        settings: Settings,
        client: Optional[OpenAI] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._client = client
        self._sleep = sleep
        self._last_call_ts = 0.0
        self._throttle_lock = Lock()

    def _check_key(self) -> str:
        key = self.settings.deepseek_api_key
        if not key:
            raise AuthError("DeepSeek API Key 未配置，请在 .env 文件中设置 DEEPSEEK_API_KEY")
        if not key.startswith("sk-"):
            raise AuthError('API Key 格式不正确。DeepSeek API Key 应该以 "sk-" 开头。请检查 .env 文件中的配置。')
        return key

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=self._check_key(),
                base_url=self.settings.deepseek_base_url,
                max_retries=0,
            )
        return self._client

    def throttled_chat_completion(self, **kwargs):
        """Call chat completions, backing off on rate limits and timeouts."""
        throttle = self.settings.llm_throttle_seconds
        max_wait = self.settings.llm_max_wait_seconds
        step = max(throttle, 0.05)
        backoff = step
        total_wait = 0.0
        last_error: Exception | None = None

        while total_wait <= max_wait:
            with self._throttle_lock:
                wait = throttle - (time.monotonic() - self._last_call_ts)
            if wait > 0:
                self._sleep(wait)
                total_wait += wait

            retry_secs = step
            try:
                resp = self.client.chat.completions.create(timeout=self.settings.llm_request_timeout, **kwargs)
                with self._throttle_lock:
                    self._last_call_ts = time.monotonic()
                return resp
            except (AuthenticationError, PermissionDeniedError) as e:
                raise AuthError(_error_message(e)) from e
            except (RateLimitError, APITimeoutError, APIConnectionError) as e:
                last_error = e
                retry_secs = max(retry_secs, backoff)
                logger.warning("DeepSeek 调用受限，{:.1f}s 后重试: {}", retry_secs, e.__class__.__name__)
            except APIStatusError as e:
                raise ServiceUnavailable(_error_message(e)) from e

            with self._throttle_lock:
                self._last_call_ts = time.monotonic()
            self._sleep(retry_secs)
            total_wait += retry_secs
            backoff = min(backoff * 2, step * 16)

        if isinstance(last_error, RateLimitError):
            raise RateLimited(_error_message(last_error)) from last_error
        raise ServiceUnavailable(_error_message(last_error) if last_error else "DeepSeek 请求超时") from last_error

    def generate(self, req: DiaryRequest) -> dict:
        self._check_key()
        system, user = build_prompts(req)
        logger.info("请求 DeepSeek: 模式={}, 风格={}, 照片={}", req.mode, req.diary_style, len(req.photos))

        resp = self.throttled_chat_completion(
            model=self.settings.deepseek_model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        content = _first_message(resp)
        title, body = parse_diary_response(content)
        return {"title": title, "content": body}


def _first_message(resp) -> str:
    choices = getattr(resp, "choices", None) or []
    message = getattr(choices[0], "message", None) if choices else None
    content = getattr(message, "content", None) if message is not None else None
    if not content or not content.strip():
        raise MalformedResponse("API 响应格式错误")
    return content


def _error_message(e: Exception) -> str:
    body = getattr(e, "body", None)
    if isinstance(body, dict):
        err = body.get("error") if isinstance(body.get("error"), dict) else body
        msg = err.get("message") if isinstance(err, dict) else None
        if msg:
            return str(msg)
    return getattr(e, "message", None) or str(e) or e.__class__.__name__
