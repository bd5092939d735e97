from pathlib import Path
from typing import Any, Dict, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from imgopt.config import logger
from imgopt.errors import (
    CapabilityUnavailable,
    EncodeFailure,
    ImgOptError,
    SourceUnreadable,
    UnsupportedFormat,
)
from imgopt.schemas import BASELINE_FORMATS, OUTPUT_FORMATS, Capabilities
from imgopt.utils.formats import normalize_format
from imgopt.utils.storage import VariantStore

PIL_FORMATS = {"avif": "AVIF", "webp": "WEBP", "jpeg": "JPEG", "png": "PNG"}

# Only these survive stripping; everything else (EXIF, XMP, ICC, comments)
# is dropped from the variant.
_KEEP_INFO = {"transparency"}


def _has_alpha(img: Image.Image) -> bool:
    return "A" in img.getbands() or "transparency" in img.info


def _prepare_mode(img: Image.Image, fmt: str) -> Image.Image:
    if fmt == "jpeg":
        if img.mode not in ("RGB", "L", "CMYK"):
            return img.convert("RGB")
        return img
    if fmt == "png":
        return img.convert("RGB") if img.mode == "CMYK" else img
    # avif / webp
    if img.mode not in ("RGB", "RGBA"):
        return img.convert("RGBA" if _has_alpha(img) else "RGB")
    return img


def _save_options(fmt: str, quality: int) -> Dict[str, Any]:
    if fmt == "avif":
        return {"quality": quality}
    if fmt == "webp":
        return {"quality": quality, "method": 6}
    if fmt == "jpeg":
        return {"quality": quality, "optimize": True, "progressive": True}
    # PNG is lossless; quality does not apply
    return {"optimize": True}


class VariantEncoder:
    """Decode → auto-orient → strip → shrink → re-encode, written atomically."""

    def __init__(self, capabilities: Capabilities, store: VariantStore):
        self.capabilities = capabilities
        self.store        = store

    def generate(
        self,
        source: Union[str, Path],
        target_width: int,
        fmt: str,
        target_path: Union[str, Path],
        quality: int,
    ) -> Path:
        name = normalize_format(fmt)
        if name not in OUTPUT_FORMATS:
            raise UnsupportedFormat(source, f"Unsupported output format {fmt!r}")
        if not self.capabilities.available:
            raise CapabilityUnavailable(source, "Image codec library not available")
        if name not in BASELINE_FORMATS and not self.capabilities.supports(name):
            raise CapabilityUnavailable(source, f"Codec cannot encode {name}")

        try:
            img = Image.open(source)
        except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise EncodeFailure(source, "Cannot identify image", exc) from exc
        except OSError as exc:
            raise SourceUnreadable(source, "Cannot open source image", exc) from exc

        target = Path(target_path)
        try:
            with img:
                out = ImageOps.exif_transpose(img)
                width, height = out.size
                if 0 < target_width < width:
                    new_h = max(1, round(height * target_width / width))
                    out = out.resize((target_width, new_h), resample=Image.LANCZOS)
                out = _prepare_mode(out, name)
                out.info = {k: v for k, v in out.info.items() if k in _KEEP_INFO}

                with self.store.atomic_write(target) as fh:
                    out.save(fh, format=PIL_FORMATS[name], **_save_options(name, quality))
        except ImgOptError:
            raise
        except Exception as exc:                          # noqa: BLE001
            logger.error("Variant encode failed for %s (%s): %s", source, name, exc)
            raise EncodeFailure(source, f"Encoding {name} failed", exc) from exc

        logger.info("Generated %s w=%d q=%d for %s", name, target_width, quality, Path(source).name)
        return target
