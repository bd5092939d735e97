from typing import FrozenSet, Iterable, Optional, Union

from imgopt.schemas import BASELINE_FORMATS, OUTPUT_FORMATS, Capabilities

AcceptSignal = Union[str, Iterable[str], None]

WILDCARD = "*"


def normalize_format(name: str) -> str:
    fmt = name.strip().lower()
    return "jpeg" if fmt == "jpg" else fmt


def baseline_for(extension: str) -> str:
    """PNG sources stay PNG; everything else falls back to JPEG."""
    return "png" if extension.lower().lstrip(".") == "png" else "jpeg"


def parse_accept(header: Optional[str]) -> FrozenSet[str]:
    """
    Turn an HTTP ``Accept`` header into an accept signal.

    Only explicitly named ``image/<fmt>`` types count; wildcards such as
    ``*/*`` or ``image/*`` do not unlock AVIF/WebP. An empty header means
    "no restriction" and yields the empty set. A header naming no image
    subtype at all yields ``{"*"}``: restricted, but to nothing beyond the
    baseline.
    """
    if not header or not header.strip():
        return frozenset()
    formats = set()
    for part in header.split(","):
        media = part.split(";", 1)[0].strip().lower()
        kind, _, subtype = media.partition("/")
        if kind == "image" and subtype and subtype != "*":
            formats.add(normalize_format(subtype))
    return frozenset(formats or {WILDCARD})


def as_accept_signal(accept: AcceptSignal) -> FrozenSet[str]:
    if accept is None:
        return frozenset()
    if isinstance(accept, str):
        return parse_accept(accept)
    return frozenset(normalize_format(a) for a in accept if a)


def supports_format(fmt: str, capabilities: Capabilities) -> bool:
    if not capabilities.available:
        return False
    name = normalize_format(fmt)
    if name in BASELINE_FORMATS:
        return True
    return capabilities.supports(name)


class FormatNegotiator:
    """
    Pick one concrete output format.

    The cascade is fixed: AVIF, then WebP, then the source-derived baseline.
    Unsupported choices are downgraded in that same order instead of failing.
    """

    def resolve(
        self,
        accept: AcceptSignal,
        forced: Optional[str],
        source_extension: str,
        capabilities: Capabilities,
    ) -> str:
        signal   = as_accept_signal(accept)
        baseline = baseline_for(source_extension)

        if forced:
            fmt = normalize_format(forced)
        else:
            fmt = self._best_for(signal, baseline, capabilities)

        if fmt not in OUTPUT_FORMATS:
            fmt = baseline
        if fmt == "avif" and not capabilities.supports("AVIF"):
            fmt = "webp"
        if fmt == "webp" and not capabilities.supports("WEBP"):
            fmt = baseline
        return fmt

    @staticmethod
    def _best_for(signal: FrozenSet[str], baseline: str, capabilities: Capabilities) -> str:
        for candidate in ("avif", "webp"):
            allowed = not signal or candidate in signal
            if allowed and capabilities.supports(candidate):
                return candidate
        return baseline
