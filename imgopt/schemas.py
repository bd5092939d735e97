from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

BASELINE_FORMATS = frozenset({"jpeg", "png"})
OUTPUT_FORMATS   = frozenset({"avif", "webp", "jpeg", "png"})


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    available: bool           = False
    formats:   FrozenSet[str] = frozenset()

    def supports(self, fmt: str) -> bool:
        name = fmt.strip().upper()
        if name == "JPG":
            name = "JPEG"
        return name in self.formats


class VariantRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    source:       str
    width:        int            = Field(0, ge=0)
    accept:       FrozenSet[str] = frozenset()
    force_format: Optional[str]  = None


class ResolvedVariantSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    format:  str
    width:   int = Field(ge=0)
    quality: int


class CapabilitiesOut(BaseModel):
    available:   bool
    formats:     list[str]
    breakpoints: list[int]
    quality:     dict[str, int]
    max_width:   int
