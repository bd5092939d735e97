import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from PIL import Image

from imgopt.config import Settings
from imgopt.errors import EncodeFailure, SourceUnreadable
from imgopt.schemas import Capabilities, ResolvedVariantSpec, VariantRequest
from imgopt.services.variants import VariantService

from conftest import RecordingEncoder

WEBP_ONLY = Capabilities(available=True, formats=frozenset({"JPEG", "PNG", "WEBP"}))


@pytest.fixture
def service(settings, all_caps, recorder):
    return VariantService(settings, all_caps, encoder=recorder)


def test_cache_directory_created(settings, all_caps, recorder):
    VariantService(settings, all_caps, encoder=recorder)
    assert Path(settings.cache_root).is_dir()


def test_second_call_is_a_cache_hit(service, recorder, make_image):
    src = make_image()
    first = service.ensure_variant(src, 400, None, "webp")
    second = service.ensure_variant(src, 400, None, "webp")
    assert first == second
    assert first.exists()
    assert len(recorder.calls) == 1


def test_source_change_invalidates(service, recorder, make_image):
    src = make_image()
    before = service.ensure_variant(src, 400)
    st = src.stat()
    os.utime(src, ns=(st.st_atime_ns, st.st_mtime_ns + 2_000_000_000))
    after = service.ensure_variant(src, 400)
    assert before != after
    assert before.exists()  # orphaned, not deleted
    assert len(recorder.calls) == 2


def test_never_upscales(service, recorder, make_image):
    src = make_image(size=(800, 600))
    path = service.ensure_variant(src, 1600, None, "jpeg")
    assert recorder.calls[-1][1] == 800
    assert "-w800-" in path.name


def test_max_width_applies_to_unsized_and_oversized_requests(tmp_path, all_caps, recorder, make_image):
    svc = VariantService(Settings(cache_root=str(tmp_path / "c"), max_width=500), all_caps, encoder=recorder)
    big = make_image(size=(2000, 1000))
    small = make_image("small.jpg", size=(300, 300))
    assert svc.clamp_width(big, 0) == 500
    assert svc.clamp_width(big, 1000) == 500
    assert svc.clamp_width(big, 200) == 200
    assert svc.clamp_width(small, 0) == 300


def test_zero_width_without_max_keeps_native(service, make_image):
    assert service.clamp_width(make_image(size=(800, 600)), 0) == 0


def test_unknown_source_size_does_not_clamp(service, tmp_path):
    assert service.clamp_width(tmp_path / "missing.jpg", 1200) == 1200


@pytest.mark.parametrize("name", ["logo.svg", "logo.SVGZ"])
def test_vector_passthrough(service, recorder, tmp_path, name):
    svg = tmp_path / name
    svg.write_text("<svg/>")
    assert service.ensure_variant(svg, 300, "image/avif", "webp") == svg
    assert recorder.calls == []


def test_negotiated_format_in_path(settings, recorder, make_image):
    svc = VariantService(settings, WEBP_ONLY, encoder=recorder)
    assert svc.ensure_variant(make_image("a.jpg"), 100).suffix == ".webp"
    assert svc.ensure_variant(make_image("a.jpg"), 100, "image/jpeg").suffix == ".jpeg"


def test_encoder_error_propagates(settings, all_caps, make_image):
    src = make_image("broken.jpg")
    svc = VariantService(settings, all_caps, encoder=RecordingEncoder(fail_on={"broken.jpg"}))
    with pytest.raises(EncodeFailure):
        svc.ensure_variant(src, 100, None, "jpeg")
    assert list(Path(settings.cache_root).iterdir()) == []


def test_quality_defaults_and_overrides(tmp_path, all_caps, recorder):
    svc = VariantService(Settings(cache_root=str(tmp_path), quality={"webp": 70}), all_caps, encoder=recorder)
    assert svc.quality_for("avif") == 42
    assert svc.quality_for("webp") == 70
    assert svc.quality_for("jpg") == 82
    assert svc.quality_for("png") == 0
    assert svc.quality_for("gif") == 80


def test_resolve_spec(service, make_image):
    src = make_image(size=(640, 480))
    spec = service.resolve_spec(VariantRequest(source=str(src), width=1024, accept=frozenset({"webp"})))
    assert spec == ResolvedVariantSpec(format="webp", width=640, quality=80)


def test_supports_format(settings, recorder):
    svc = VariantService(settings, Capabilities(available=False), encoder=recorder)
    assert not svc.supports_format("jpeg")


def test_public_path(tmp_path, all_caps, recorder):
    svc = VariantService(
        Settings(cache_root=str(tmp_path / "public" / "cache"), public_root=str(tmp_path / "public"),
                 cdn_base="https://cdn.example.com"),
        all_caps,
        encoder=recorder,
    )
    assert svc.public_path(tmp_path / "public" / "cache" / "x.webp") == "https://cdn.example.com/cache/x.webp"


# ── with the real Pillow encoder ───────────────────────────────────────────
def test_real_encode_round(settings, baseline_caps, make_image):
    svc = VariantService(settings, baseline_caps)
    src = make_image(size=(1200, 800))
    path = svc.ensure_variant(src, 600, "image/avif,image/webp")
    with Image.open(path) as img:
        assert img.format == "JPEG"
        assert img.size == (600, 400)
    stamp = path.stat().st_mtime_ns
    assert svc.ensure_variant(src, 600, "image/avif,image/webp") == path
    assert path.stat().st_mtime_ns == stamp


def test_real_encode_missing_source(settings, baseline_caps, tmp_path):
    svc = VariantService(settings, baseline_caps)
    with pytest.raises(SourceUnreadable):
        svc.ensure_variant(tmp_path / "gone.png", 100)


def test_concurrent_requests_never_see_partial_files(settings, baseline_caps, make_image):
    svc = VariantService(settings, baseline_caps)
    src = make_image(size=(1600, 1200))

    def fetch(_):
        path = svc.ensure_variant(src, 400, None, "png")
        with Image.open(path) as img:
            img.verify()
        return path

    with ThreadPoolExecutor(max_workers=8) as pool:
        paths = set(pool.map(fetch, range(16)))

    assert len(paths) == 1
    assert [p.name for p in Path(settings.cache_root).iterdir()] == [paths.pop().name]
