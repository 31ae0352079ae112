"""AuroDiary 异常分类"""

from __future__ import annotations


class AuroDiaryError(Exception):
    """Base class for every error raised by aurodiary."""


# ---------------- 图片占位符 ----------------

class PlacementError(AuroDiaryError):
    def __init__(self, index: int, message: str) -> None:
        super().__init__(message)
        self.index = index


class MissingPhoto(PlacementError):
    def __init__(self, index: int) -> None:
        super().__init__(index, f"[图片{index}] 没有对应的照片")


class DuplicatePhoto(PlacementError):
    def __init__(self, index: int) -> None:
        super().__init__(index, f"[图片{index}] 已经在文中出现过")


class RenderIOError(AuroDiaryError):
    def __init__(self, path: str, reason: str = "") -> None:
        super().__init__(f"无法读取图片 {path}: {reason}".rstrip(": "))
        self.path = path


# ---------------- 外部协作方 ----------------

class ConfigError(AuroDiaryError):
    pass


class UploadRejected(AuroDiaryError):
    pass


class LLMError(AuroDiaryError):
    status_code = 500


class AuthError(LLMError):
    pass


class RateLimited(LLMError):
    status_code = 429

    def __init__(self, message: str, retry_after_ms: int | None = None) -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class MalformedResponse(LLMError):
    pass


class ServiceUnavailable(LLMError):
    pass


class FeishuError(AuroDiaryError):
    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
