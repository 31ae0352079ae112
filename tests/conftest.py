from __future__ import annotations

import pathlib
from types import SimpleNamespace

import pytest
from PIL import Image

from aurodiary.app import create_app
from aurodiary.config import Settings
from aurodiary.feishu import FeishuClient
from aurodiary.llm import DiaryWriter
from aurodiary.models import PhotoRecord


def chat_response(content):
    message = SimpleNamespace(role="assistant", content=content)
    return SimpleNamespace(choices=[SimpleNamespace(index=0, message=message)])


class FakeCompletions:
    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeOpenAI:
    def __init__(self, *results):
        self.completions = FakeCompletions(results)
        self.chat = SimpleNamespace(completions=self.completions)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Replays canned Feishu responses keyed by URL suffix."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def post(self, url, timeout=None, **kwargs):
        self.calls.append((url, kwargs))
        for suffix, payload in self.routes.items():
            if url.endswith(suffix):
                return FakeResponse(payload)
        raise AssertionError(f"unexpected url {url}")


@pytest.fixture
def upload_dir(tmp_path) -> pathlib.Path:
    d = tmp_path / "uploads"
    d.mkdir()
    return d


@pytest.fixture
def settings(tmp_path, upload_dir) -> Settings:
    return Settings(
        upload_dir=upload_dir,
        dist_dir=tmp_path / "dist",
        deepseek_api_key="sk-test",
        llm_throttle_seconds=0.05,
        llm_max_wait_seconds=0.2,
        feishu_app_id="cli_app",
        feishu_app_secret="secret",
        feishu_app_token="bascnAppToken",
        feishu_table_id="tblDiary",
    )


@pytest.fixture
def make_image(upload_dir):
    def _make(name="photo.jpg", size=(400, 300), color=(200, 120, 40)):
        path = upload_dir / name
        fmt = "PNG" if name.endswith(".png") else "JPEG"
        Image.new("RGB", size, color).save(path, fmt)
        return path
    return _make


@pytest.fixture
def make_photo(make_image, upload_dir):
    def _make(name="photo.jpg", size=(400, 300), location=None, create=True):
        # create=False 模拟上传后文件被删除
        local = make_image(name, size) if create else upload_dir / name
        return PhotoRecord(
            filename=name,
            original_name=name,
            path=f"/uploads/{name}",
            location=location,
            local_path=local,
        )
    return _make


@pytest.fixture
def fake_openai():
    return FakeOpenAI(chat_response("标题：海边的一天\n正文：早上到了海边。[图片1]\n傍晚回家。"))


@pytest.fixture
def feishu_session():
    return FakeSession({
        "/tenant_access_token/internal": {"code": 0, "tenant_access_token": "t-123"},
        "/medias/upload_all": {"code": 0, "data": {"file_token": "boxTok"}},
        "/records": {"code": 0, "data": {"record": {"record_id": "rec001"}}},
    })


@pytest.fixture
def app(settings, fake_openai, feishu_session):
    writer = DiaryWriter(settings, client=fake_openai, sleep=lambda s: None)
    feishu = FeishuClient(settings, session=feishu_session)
    app = create_app(settings, writer=writer, feishu=feishu)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
