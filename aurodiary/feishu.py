"""飞书多维表格（Bitable）写入"""

from __future__ import annotations

import pathlib
from datetime import datetime, timezone
from typing import List, Optional

import requests
from loguru import logger

from aurodiary.config import Settings
from aurodiary.errors import FeishuError
from aurodiary.models import DiaryDraft

FEISHU_API = "https://open.feishu.cn/open-apis"

DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d", "%Y年%m月%d日")


def date_to_millis(value: str) -> Optional[int]:
    """Bitable date fields take epoch milliseconds; plain dates are UTC midnight."""
    value = (value or "").strip()
    if not value:
        return None
    dt: Optional[datetime] = None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        for fmt in DATE_FORMATS:
            try:
                dt = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


class FeishuClient:
    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        base_url: str = FEISHU_API,
        timeout: float = 30.0,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.post(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise FeishuError(f"飞书接口请求失败: {e}") from e
        try:
            data = resp.json()
        except ValueError as e:
            raise FeishuError(f"飞书接口返回非 JSON 内容 (HTTP {resp.status_code})") from e
        code = data.get("code", -1)
        if code != 0:
            raise FeishuError(data.get("msg") or "飞书接口返回错误", code=code)
        return data

    def tenant_access_token(self) -> str:
        data = self._post("/auth/v3/tenant_access_token/internal", json={
            "app_id": self.settings.feishu_app_id,
            "app_secret": self.settings.feishu_app_secret,
        })
        token = data.get("tenant_access_token")
        if not token:
            raise FeishuError("飞书未返回 tenant_access_token")
        return token

    def upload_image(self, token: str, path: pathlib.Path) -> str:
        with path.open("rb") as fh:
            data = self._post(
                "/drive/v1/medias/upload_all",
                headers={"Authorization": f"Bearer {token}"},
                data={
                    "file_name": path.name,
                    "parent_type": "bitable_image",
                    "parent_node": self.settings.feishu_app_token,
                    "size": str(path.stat().st_size),
                },
                files={"file": (path.name, fh)},
            )
        return data["data"]["file_token"]

    def create_record(self, token: str, fields: dict) -> str:
        path = f"/bitable/v1/apps/{self.settings.feishu_app_token}/tables/{self.settings.feishu_table_id}/records"
        data = self._post(
            path,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json; charset=utf-8",
            },
            json={"fields": fields},
        )
        return data["data"]["record"]["record_id"]

    def save_diary(self, draft: DiaryDraft) -> dict:
        self.settings.require_feishu()
        token = self.tenant_access_token()

        photo_tokens: List[dict] = []
        for photo in draft.photos:
            if photo is None or photo.local_path is None or not photo.local_path.is_file():
                logger.warning("飞书保存：图片文件不存在，跳过 {}", photo.path if photo else None)
                continue
            photo_tokens.append({"file_token": self.upload_image(token, photo.local_path)})

        fields = {
            "标题": draft.title,
            "地点": draft.location,
            "日记正文": draft.content,
            "照片": photo_tokens,
        }
        millis = date_to_millis(draft.date)
        if millis is not None:
            fields["日期"] = millis
        else:
            logger.warning("飞书保存：无法解析日期 {!r}，不写入日期字段", draft.date)

        record_id = self.create_record(token, fields)
        logger.info("已写入飞书多维表格: record_id={}, 照片 {} 张", record_id, len(photo_tokens))
        return {"success": True, "recordId": record_id}
