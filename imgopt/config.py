import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

DEFAULT_BREAKPOINTS = [480, 768, 1080, 1440, 1920]
DEFAULT_QUALITY     = {"avif": 42, "webp": 80, "jpeg": 82, "png": 0}

CACHE_ROOT   = os.getenv("IMGOPT_CACHE_ROOT", str(Path(tempfile.gettempdir()) / "img-opt-cache"))
BREAKPOINTS  = os.getenv("IMGOPT_BREAKPOINTS", "")
MAX_WIDTH    = int(os.getenv("IMGOPT_MAX_WIDTH", "0"))
PUBLIC_ROOT  = os.getenv("IMGOPT_PUBLIC_ROOT", "")
CDN_BASE     = os.getenv("IMGOPT_CDN_BASE", "")
SIZE_CACHE   = os.getenv("IMGOPT_SIZE_CACHE", "")
LOG_LEVEL    = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("imgopt")


def _parse_widths(raw: str) -> List[int]:
    return [int(x) for x in raw.split(",") if x.strip()]


def _env_quality() -> Dict[str, int]:
    quality = dict(DEFAULT_QUALITY)
    for fmt in quality:
        raw = os.getenv(f"IMGOPT_Q_{fmt.upper()}")
        if raw:
            quality[fmt] = int(raw)
    return quality


class Settings(BaseModel):
    cache_root:      str                 = CACHE_ROOT
    breakpoints:     List[int]           = Field(default_factory=lambda: list(DEFAULT_BREAKPOINTS))
    quality:         Dict[str, int]      = Field(default_factory=lambda: dict(DEFAULT_QUALITY))
    max_width:       int                 = 0
    public_root:     str                 = ""
    cdn_base:        str                 = ""
    size_cache_file: str                 = ""

    @field_validator("cache_root", "public_root", "cdn_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("breakpoints")
    @classmethod
    def _unique_sorted(cls, value: List[int]) -> List[int]:
        return sorted({int(w) for w in value if int(w) > 0})

    @field_validator("quality")
    @classmethod
    def _fill_quality(cls, value: Dict[str, int]) -> Dict[str, int]:
        # Partial overrides keep the per-format defaults for the rest
        merged = dict(DEFAULT_QUALITY)
        merged.update({k.lower(): int(v) for k, v in value.items()})
        if "jpg" in merged:
            merged["jpeg"] = merged.pop("jpg")
        return merged

    @field_validator("max_width")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(0, value)

    @property
    def size_cache_path(self) -> Path:
        if self.size_cache_file:
            return Path(self.size_cache_file)
        return Path(self.cache_root) / "image-sizes.json"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            cache_root      = CACHE_ROOT,
            breakpoints     = _parse_widths(BREAKPOINTS) or DEFAULT_BREAKPOINTS,
            quality         = _env_quality(),
            max_width       = MAX_WIDTH,
            public_root     = PUBLIC_ROOT,
            cdn_base        = CDN_BASE,
            size_cache_file = SIZE_CACHE,
        )
