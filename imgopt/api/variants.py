import mimetypes
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse

from imgopt.config import logger
from imgopt.deps import get_service
from imgopt.errors import (
    CacheIOError,
    CapabilityUnavailable,
    EncodeFailure,
    SourceUnreadable,
)
from imgopt.schemas import CapabilitiesOut
from imgopt.services.variants import VariantService
from imgopt.utils.formats import parse_accept
from imgopt.utils.urls import to_local_path

router = APIRouter()

# Keyed on mtime, so a given URL's bytes only change when the source does.
CACHE_CONTROL = "public, max-age=31536000, immutable"


def _media_type(path: str) -> str:
    if path.endswith(".avif"):
        return "image/avif"
    if path.endswith(".webp"):
        return "image/webp"
    mt, _ = mimetypes.guess_type(path)
    return mt or "application/octet-stream"


@router.get("/variants")
def get_variant(
    request: Request,
    src: str = Query(..., min_length=1),
    w: int = Query(0, ge=0),
    fmt: Optional[str] = Query(None, alias="format"),
    service: VariantService = Depends(get_service),
):
    local = to_local_path(src, service.settings.public_root)
    if local is None or not local.is_file():
        raise HTTPException(status_code=404, detail="Image not found")

    accept = parse_accept(request.headers.get("accept", ""))
    try:
        path = service.ensure_variant(local, w, accept, fmt)
    except SourceUnreadable:
        raise HTTPException(status_code=404, detail="Image not found")
    except CapabilityUnavailable as e:
        logger.warning("Variant request for %s refused: %s", src, e)
        raise HTTPException(status_code=503, detail="Image encoder unavailable")
    except (EncodeFailure, CacheIOError) as e:
        logger.error("Variant generation failed for %s: %s", src, e)
        raise HTTPException(status_code=500, detail="Variant generation failed")

    return FileResponse(
        path,
        media_type=_media_type(str(path)),
        headers={"Vary": "Accept", "Cache-Control": CACHE_CONTROL},
    )


@router.get("/capabilities", response_model=CapabilitiesOut)
def get_capabilities(service: VariantService = Depends(get_service)):
    caps = service.capabilities
    return CapabilitiesOut(
        available   = caps.available,
        formats     = sorted(caps.formats),
        breakpoints = service.settings.breakpoints,
        quality     = service.settings.quality,
        max_width   = service.settings.max_width,
    )
