import importlib
from types import ModuleType
from typing import Callable, Iterable, Optional

from imgopt.config import logger
from imgopt.schemas import Capabilities

# Optional codec plugins that register extra save formats with Pillow when
# installed (older Pillow wheels ship without native AVIF).
CODEC_PLUGINS = ("pillow_avif",)


def _load_pillow() -> ModuleType:
    return importlib.import_module("PIL.Image")


class CapabilityProbe:
    """One-shot probe of the image codec library.

    Never raises: a missing or broken Pillow install yields an
    ``available=False`` snapshot, and the reason is logged.
    """

    def __init__(
        self,
        loader: Optional[Callable[[], ModuleType]] = None,
        plugins: Iterable[str] = CODEC_PLUGINS,
    ):
        self.loader  = loader or _load_pillow
        self.plugins = tuple(plugins)

    def detect(self) -> Capabilities:
        try:
            codec = self.loader()
        except Exception as exc:                          # noqa: BLE001
            logger.warning("Image codec library unavailable: %s", exc)
            return Capabilities(available=False, formats=frozenset())

        for plugin in self.plugins:
            try:
                importlib.import_module(plugin)
            except ImportError as exc:
                logger.debug("Codec plugin %s not installed: %s", plugin, exc)

        try:
            codec.init()
            formats = frozenset(str(fmt).upper() for fmt in codec.SAVE)
        except Exception as exc:                          # noqa: BLE001
            logger.warning("Querying codec formats failed: %s", exc)
            return Capabilities(available=False, formats=frozenset())

        logger.info("Codec formats available: %s", ", ".join(sorted(formats)))
        return Capabilities(available=True, formats=formats)
