import os
import re

import pytest

from imgopt.utils.cache_keys import CacheKeyResolver, readable_name, variant_digest


@pytest.fixture
def resolver(tmp_path):
    return CacheKeyResolver(tmp_path / "cache")


def test_same_inputs_same_path(resolver, make_image):
    src = make_image()
    assert resolver.resolve(src, 400, "webp", 80) == resolver.resolve(str(src), 400, "webp", 80)


def test_any_field_changes_path(resolver, make_image):
    src = make_image()
    other = make_image("other.jpg")
    base = resolver.resolve(src, 400, "webp", 80)
    assert resolver.resolve(src, 401, "webp", 80) != base
    assert resolver.resolve(src, 400, "avif", 80) != base
    assert resolver.resolve(src, 400, "webp", 81) != base
    assert resolver.resolve(other, 400, "webp", 80) != base


def test_mtime_change_changes_path(resolver, make_image):
    src = make_image()
    before = resolver.resolve(src, 400, "jpeg", 82)
    st = src.stat()
    os.utime(src, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))
    assert resolver.resolve(src, 400, "jpeg", 82) != before


def test_filename_layout(resolver, tmp_path, make_image):
    src = make_image("Hero Shot.JPG", folder=tmp_path / "photos")
    path = resolver.resolve(src, 800, "jpg", 82)
    assert path.parent == tmp_path / "cache"
    assert re.fullmatch(r"photos-hero-shot-w800-q82-[0-9a-f]{16}\.jpeg", path.name)


def test_missing_source_still_resolves(resolver, tmp_path):
    path = resolver.resolve(tmp_path / "gone" / "x.png", 0, "png", 0)
    assert path.name.startswith("gone-x-w0-q0-")


def test_format_case_does_not_matter():
    assert variant_digest("/a.jpg", 1, 10, "WEBP", 80) == variant_digest("/a.jpg", 1, 10, "webp", 80)


@pytest.mark.parametrize("source, expected", [
    ("/var/www/img/Hero Shot.JPG", "img-hero-shot"),
    ("photo.jpg", "photo"),
    ("/photo.jpg", "photo"),
    ("/cdn/pic.png?v=3#top", "cdn-pic"),
    ("/a/photo (1).webp", "a-photo-1"),
    ("", "image"),
])
def test_readable_name(source, expected):
    assert readable_name(source) == expected
