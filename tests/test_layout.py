import pytest
from PIL import Image

from aurodiary.errors import DuplicatePhoto, MissingPhoto
from aurodiary.layout import (
    DISPLAY_PROFILE,
    DOCUMENT_PROFILE,
    LayoutProfile,
    LayoutResolver,
    LayoutSize,
    compute_display_size,
    intrinsic_size,
    probe_dimensions,
)
from aurodiary.models import PhotoRecord
from aurodiary.placeholders import PhotoRef

PROFILE = LayoutProfile(max_width=450, max_height=600, default_width=450, default_height=300)


def test_landscape_photo_fits_width():
    assert compute_display_size(4000, 3000, PROFILE) == LayoutSize(450, 338)


def test_tall_photo_is_clamped_to_max_height():
    assert compute_display_size(1000, 5000, PROFILE) == LayoutSize(120, 600)


@pytest.mark.parametrize("w,h", [(0, 300), (300, 0), (None, 300), (300, None), (-10, 20), (None, None)])
def test_unknown_or_invalid_size_uses_default(w, h):
    assert compute_display_size(w, h, PROFILE) == LayoutSize(450, 300)


def test_display_profile_default():
    assert compute_display_size(None, None, DISPLAY_PROFILE) == LayoutSize(400, 300)


@pytest.mark.parametrize("w,h", [(4000, 3000), (3000, 4000), (1920, 1080), (1, 1), (7, 3000), (5000, 7), (640, 641)])
def test_aspect_ratio_is_preserved_within_bounds(w, h):
    size = compute_display_size(w, h, DOCUMENT_PROFILE)
    assert 1 <= size.width <= DOCUMENT_PROFILE.max_width
    assert 1 <= size.height <= DOCUMENT_PROFILE.max_height
    if size.width > 20 and size.height > 20:
        assert abs(round(size.height / size.width * 1000) - round(h / w * 1000)) <= 1


def test_probe_reads_real_image(make_image):
    path = make_image("a.png", size=(321, 123))
    assert probe_dimensions(path) == (321, 123)


def test_probe_failure_returns_none(upload_dir):
    bad = upload_dir / "broken.jpg"
    bad.write_bytes(b"not an image")
    assert probe_dimensions(bad) is None
    assert probe_dimensions(upload_dir / "missing.jpg") is None
    assert probe_dimensions(None) is None


def test_intrinsic_size_fills_record_lazily(make_photo):
    photo = make_photo("lazy.jpg", size=(800, 600))
    assert photo.width is None
    assert intrinsic_size(photo) == (800, 600)
    assert (photo.width, photo.height) == (800, 600)

    calls = []
    intrinsic_size(photo, probe=lambda p: calls.append(p))
    assert calls == []


def _photos(n):
    return [PhotoRecord(f"{i}.jpg", f"{i}.jpg", f"/uploads/{i}.jpg") for i in range(1, n + 1)]


def test_resolver_rejects_out_of_range():
    resolver = LayoutResolver(_photos(3), probe=lambda p: None)
    for idx in (0, 4, 99):
        with pytest.raises(MissingPhoto):
            resolver.resolve(PhotoRef(idx))


def test_resolver_rejects_absent_record():
    resolver = LayoutResolver([None, _photos(1)[0]], probe=lambda p: None)
    with pytest.raises(MissingPhoto):
        resolver.resolve(PhotoRef(1))
    photo, _ = resolver.resolve(PhotoRef(2))
    assert photo.filename == "1.jpg"


def test_resolver_first_occurrence_wins():
    resolver = LayoutResolver(_photos(2), probe=lambda p: (4000, 3000))
    photo, size = resolver.resolve(PhotoRef(1))
    assert size == LayoutSize(450, 338)
    with pytest.raises(DuplicatePhoto) as exc:
        resolver.resolve(PhotoRef(1))
    assert exc.value.index == 1


def test_resolver_falls_back_to_default_when_probe_fails():
    resolver = LayoutResolver(_photos(1), profile=DISPLAY_PROFILE, probe=lambda p: None)
    _, size = resolver.resolve(PhotoRef(1))
    assert size == LayoutSize(400, 300)


@pytest.mark.parametrize("w,h,expected", [
    (10000, 1, LayoutSize(450, 1)),
    (1, 10000, LayoutSize(1, 600)),
])
def test_extreme_ratios_are_floored_at_one_pixel(w, h, expected):
    # 比例无法保持时，短边至少保留 1 像素
    assert compute_display_size(w, h, DOCUMENT_PROFILE) == expected


def test_probe_gives_up_on_oversized_images(make_image, monkeypatch):
    path = make_image("huge.png", size=(100, 100))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    assert probe_dimensions(path) is None
