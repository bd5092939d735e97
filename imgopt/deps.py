from functools import lru_cache

from imgopt.config import Settings
from imgopt.schemas import Capabilities
from imgopt.services.variants import VariantService
from imgopt.utils.capabilities import CapabilityProbe
from imgopt.utils.size_cache import JsonFileSizeStore, SourceSizeLookup


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_capabilities() -> Capabilities:
    # Probed once per process; the snapshot never changes afterwards.
    return CapabilityProbe().detect()


@lru_cache(maxsize=1)
def get_service() -> VariantService:
    settings = get_settings()
    return VariantService(
        settings,
        get_capabilities(),
        sizes=SourceSizeLookup(JsonFileSizeStore(settings.size_cache_path)),
    )
