from __future__ import annotations

import pathlib
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class PhotoRecord:
    filename: str
    original_name: str
    path: str                                   # 对外地址 /uploads/<filename>
    location: Optional[str] = None
    width: Optional[int] = None                 # 首次排版时才探测
    height: Optional[int] = None
    local_path: Optional[pathlib.Path] = None

    def to_dict(self) -> dict:
        data = {
            "filename": self.filename,
            "originalName": self.original_name,
            "path": self.path,
            "location": self.location,
        }
        if self.width and self.height:
            data["width"] = self.width
            data["height"] = self.height
        return data


@dataclass
class DiaryDraft:
    title: str = ""
    date: str = ""
    location: str = ""
    content: str = ""
    photos: List[Optional[PhotoRecord]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "date": self.date,
            "location": self.location,
            "content": self.content,
            "photos": [p.to_dict() for p in self.photos if p is not None],
        }


# ---------------- 请求体 ----------------

class PhotoPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: Optional[str] = None
    original_name: Optional[str] = Field(default=None, alias="originalName")
    path: Optional[str] = None
    location: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def to_record(self, upload_dir: pathlib.Path) -> Optional[PhotoRecord]:
        ref = self.path or self.filename
        if not ref:
            return None
        # 只取文件名，防止 ../ 跳出上传目录
        name = pathlib.PurePosixPath(ref.replace("\\", "/")).name
        if not name:
            return None
        return PhotoRecord(
            filename=self.filename or name,
            original_name=self.original_name or name,
            path=self.path or f"/uploads/{name}",
            location=self.location,
            width=self.width,
            height=self.height,
            local_path=upload_dir / name,
        )


class DiaryPayload(BaseModel):
    title: str = ""
    date: str = ""
    location: str = ""
    content: str = ""
    # 保留 null 占位，保证 [图片n] 的位置编号不变
    photos: List[Optional[PhotoPayload]] = Field(default_factory=list)

    def to_draft(self, upload_dir: pathlib.Path) -> DiaryDraft:
        return DiaryDraft(
            title=self.title,
            date=self.date,
            location=self.location,
            content=self.content,
            photos=[p.to_record(upload_dir) if p is not None else None for p in self.photos],
        )
