"""
Variant resolution: the one call every consumer of the cache goes through.

    request → negotiate format → pick quality → clamp width
            → cache path → existing file? → encode on miss → path

No in-process index is kept; the cache directory is the only state, so any
number of threads or workers may call :meth:`VariantService.ensure_variant`
concurrently. Two callers racing on the same missing variant both encode it
and the last rename wins, which is harmless because the inputs are identical.
"""
from pathlib import Path
from typing import Optional, Union

from imgopt.config import Settings, logger
from imgopt.schemas import Capabilities, ResolvedVariantSpec, VariantRequest
from imgopt.utils.cache_keys import CacheKeyResolver
from imgopt.utils.formats import AcceptSignal, FormatNegotiator, as_accept_signal, normalize_format, supports_format
from imgopt.utils.image_variants import VariantEncoder
from imgopt.utils.size_cache import MemorySizeStore, SourceSizeLookup
from imgopt.utils.source import SourceImage
from imgopt.utils.storage import VariantStore
from imgopt.utils.urls import public_path

DEFAULT_QUALITY = 80


class VariantService:
    def __init__(
        self,
        settings: Settings,
        capabilities: Capabilities,
        resolver: Optional[CacheKeyResolver] = None,
        store: Optional[VariantStore] = None,
        encoder: Optional[VariantEncoder] = None,
        sizes: Optional[SourceSizeLookup] = None,
        negotiator: Optional[FormatNegotiator] = None,
    ):
        self.settings     = settings
        self.capabilities = capabilities
        self.resolver     = resolver or CacheKeyResolver(settings.cache_root)
        self.store        = store or VariantStore(settings.cache_root)
        self.encoder      = encoder or VariantEncoder(capabilities, self.store)
        self.sizes        = sizes or SourceSizeLookup(MemorySizeStore())
        self.negotiator   = negotiator or FormatNegotiator()
        self.store.ensure_directory()

    # ── public API ─────────────────────────────────────────────────────────
    def ensure_variant(
        self,
        source: Union[str, Path],
        width: int = 0,
        accept: AcceptSignal = None,
        force_format: Optional[str] = None,
    ) -> Path:
        """
        Return the path of a cached variant of *source*, encoding it first
        if it does not exist yet.

        Vector sources are returned as-is. Encoder errors propagate as
        :class:`~imgopt.errors.EncodeError` subclasses.
        """
        src = SourceImage(source)
        if src.is_vector:
            return Path(source)

        request = VariantRequest(
            source       = src.path,
            width        = max(0, width),
            accept       = as_accept_signal(accept),
            force_format = force_format,
        )
        spec   = self._resolve(request, src)
        target = self.resolver.resolve(src.path, spec.width, spec.format, spec.quality)

        # The key embeds the source mtime, so an existing file is fresh.
        if self.store.exists(target):
            logger.debug("Cache hit %s", target.name)
            return target

        logger.info("Cache miss %s → %s", src.path, target.name)
        return Path(self.encoder.generate(src.path, spec.width, spec.format, target, spec.quality))

    def resolve_spec(self, request: VariantRequest) -> ResolvedVariantSpec:
        return self._resolve(request, SourceImage(request.source))

    def quality_for(self, fmt: str) -> int:
        return self.settings.quality.get(normalize_format(fmt), DEFAULT_QUALITY)

    def clamp_width(self, source: Union[str, Path], requested: int) -> int:
        width = max(0, requested)
        limit = self.settings.max_width
        if limit > 0 and (width == 0 or width > limit):
            width = limit

        # Never upscale past the source's own width
        size = self.sizes.size_of(source)
        if size and 0 < size[0] < width:
            width = size[0]
        return width

    def supports_format(self, fmt: str) -> bool:
        return supports_format(fmt, self.capabilities)

    def public_path(self, path: Union[str, Path]) -> str:
        return public_path(path, self.settings.public_root, self.settings.cdn_base)

    # ── internals ──────────────────────────────────────────────────────────
    def _resolve(self, request: VariantRequest, src: SourceImage) -> ResolvedVariantSpec:
        fmt = self.negotiator.resolve(
            request.accept, request.force_format, src.extension, self.capabilities
        )
        return ResolvedVariantSpec(
            format  = fmt,
            width   = self.clamp_width(src.path, request.width),
            quality = self.quality_for(fmt),
        )
