import io

import docx
from docx.shared import Inches
from PIL import Image

from aurodiary.document import assemble
from aurodiary.errors import RenderIOError
from aurodiary.layout import DISPLAY_PROFILE
from aurodiary.models import DiaryDraft
from aurodiary.renderers import DocxRenderer, HtmlRenderer, ImageRenderer, load_photo_bytes, read_photo_bytes

import pytest


@pytest.fixture
def draft(make_photo):
    photos = [
        make_photo("sea.jpg", size=(4000, 3000), location="厦门"),
        make_photo("gone.jpg", location="杭州", create=False),
        make_photo("tower.png", size=(1000, 5000)),
    ]
    return DiaryDraft(
        title="海边的一天",
        date="2024-05-01",
        location="厦门",
        content="早上出门。[图片1]\n中午吃饭。[图片2]\n<b>晚上</b>看塔。[图片3][图片1]",
        photos=photos,
    )


def test_read_photo_bytes_raises_for_missing_file(make_photo):
    photo = make_photo("missing.jpg", create=False)
    with pytest.raises(RenderIOError):
        read_photo_bytes(photo)


def test_docx_contains_blocks_in_order(draft):
    data = DocxRenderer().render(assemble(draft))
    doc = docx.Document(io.BytesIO(data))
    texts = [p.text for p in doc.paragraphs if p.text]

    assert texts[0] == "海边的一天"
    assert texts[1] == "日期：2024-05-01    地点：厦门"
    assert texts[2:] == ["早上出门。", "📍 厦门", "中午吃饭。", "<b>晚上</b>看塔。"]


def test_docx_sizes_pictures_from_tree_and_skips_unreadable(draft):
    doc = docx.Document(io.BytesIO(DocxRenderer().render(assemble(draft))))
    shapes = list(doc.inline_shapes)

    # 图片2 文件已删除，图片1 第二次出现被忽略
    assert len(shapes) == 2
    assert shapes[0].width == Inches(450 / 96)
    assert shapes[0].height == Inches(338 / 96)
    assert shapes[1].width == Inches(120 / 96)
    assert shapes[1].height == Inches(600 / 96)


def test_docx_skips_corrupt_image(make_photo, upload_dir):
    photo = make_photo("bad.jpg", location="某地", create=False)
    (upload_dir / "bad.jpg").write_bytes(b"garbage")
    draft = DiaryDraft(title="t", content="a[图片1]b", photos=[photo])
    doc = docx.Document(io.BytesIO(DocxRenderer().render(assemble(draft))))
    assert len(doc.inline_shapes) == 0
    assert "📍 某地" not in [p.text for p in doc.paragraphs]


def test_html_renders_same_photos_in_same_order(draft):
    html = HtmlRenderer().render(assemble(draft, profile=DISPLAY_PROFILE))

    assert html.count("<img") == 2
    assert html.index('src="/uploads/sea.jpg"') < html.index('src="/uploads/tower.png"')
    assert "gone.jpg" not in html
    assert 'width="400" height="300"' in html
    assert "📍 厦门" in html
    assert "📍 杭州" not in html


def test_html_escapes_text(draft):
    html = HtmlRenderer().render(assemble(draft, profile=DISPLAY_PROFILE))
    assert "<b>晚上</b>" not in html
    assert "&lt;b&gt;晚上&lt;/b&gt;" in html


def test_html_view_blocks_attach_caption_to_figure(draft):
    blocks = HtmlRenderer().view_blocks(assemble(draft, profile=DISPLAY_PROFILE))
    figures = [b for b in blocks if b["kind"] == "photo"]
    assert [f["index"] for f in figures] == [1, 3]
    assert figures[0]["caption"] == "📍 厦门"
    assert figures[1]["caption"] is None


def test_long_image_renders_png(draft):
    data = ImageRenderer(page_width=500, scale=1).render(assemble(draft, profile=DISPLAY_PROFILE))
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "PNG"
        assert img.width == 500
        # 两张图（300 + 600）加上文字
        assert img.height > 900


def test_long_image_without_photos(make_photo):
    draft = DiaryDraft(title="只有文字", content="一行\n两行", photos=[make_photo("x.jpg", create=False)])
    data = ImageRenderer(scale=1).render(assemble(draft, profile=DISPLAY_PROFILE))
    with Image.open(io.BytesIO(data)) as img:
        assert img.size[0] == 500


def _photo_count_per_output(draft):
    tree = assemble(draft, profile=DISPLAY_PROFILE)
    doc = docx.Document(io.BytesIO(DocxRenderer().render(assemble(draft))))
    html = HtmlRenderer().render(tree)
    with Image.open(io.BytesIO(ImageRenderer(scale=1).render(tree))) as img:
        height = img.height
    return len(doc.inline_shapes), html.count("<img"), height


def test_corrupt_photo_is_dropped_from_every_output(make_photo, upload_dir):
    photo = make_photo("bad.jpg", location="某地", create=False)
    (upload_dir / "bad.jpg").write_bytes(b"\xff\xd8\xff\xe0 not really a jpeg")
    text_only = DiaryDraft(title="t", content="a\nb")
    with_bad = DiaryDraft(title="t", content="a[图片1]b", photos=[photo])

    docx_count, html_count, height = _photo_count_per_output(with_bad)
    assert (docx_count, html_count) == (0, 0)
    assert height == _photo_count_per_output(text_only)[2]
    assert "📍 某地" not in HtmlRenderer().render(assemble(with_bad, profile=DISPLAY_PROFILE))


def test_truncated_photo_is_rejected_by_shared_loader(make_image, make_photo):
    path = make_image("cut.jpg", size=(300, 200))
    path.write_bytes(path.read_bytes()[:200])
    photo = make_photo("cut.jpg", create=False)
    with pytest.raises(RenderIOError):
        load_photo_bytes(photo)


def test_oversized_photo_is_skipped_not_fatal(make_photo, monkeypatch):
    photo = make_photo("huge.png", size=(100, 100), location="远方")
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    draft = DiaryDraft(title="t", content="a[图片1]b", photos=[photo])

    tree = assemble(draft)
    assert [(b.width, b.height) for b in tree.photo_blocks()] == [(450, 300)]
    docx_count, html_count, _ = _photo_count_per_output(draft)
    assert (docx_count, html_count) == (0, 0)


def test_docx_converts_formats_word_cannot_embed(upload_dir, make_photo):
    Image.new("RGB", (200, 100), (0, 120, 60)).save(upload_dir / "leaf.webp", "WEBP")
    photo = make_photo("leaf.webp", create=False)
    draft = DiaryDraft(title="t", content="[图片1]", photos=[photo])

    docx_count, html_count, _ = _photo_count_per_output(draft)
    assert (docx_count, html_count) == (1, 1)
