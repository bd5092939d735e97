#!/usr/bin/env python3
"""
Pre-generate AVIF / WebP variants for every PNG/JPEG under a folder.

  • Outputs land in the variant cache (default ``<folder>/_img-opt``) under
    the same names the HTTP service would use, so a warmed cache is served
    without any encoding.
  • Fresh outputs are skipped unless ``--force`` is given.
  • A failing file is counted and logged; the run carries on.

Log verbosity follows the ``LOG_LEVEL`` environment variable.
"""
import argparse
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from imgopt.config import Settings, logger
from imgopt.errors import EncodeError
from imgopt.schemas import Capabilities
from imgopt.services.variants import VariantService
from imgopt.utils.capabilities import CapabilityProbe
from imgopt.utils.formats import normalize_format
from imgopt.utils.image_variants import VariantEncoder

SOURCE_EXTS = {".png", ".jpg", ".jpeg"}
SKIP_DIRS   = {".git", ".hg", ".svn"}
MAX_ERRORS  = 10


class BatchReport(BaseModel):
    processed: int            = 0
    created:   Dict[str, int] = Field(default_factory=dict)
    skipped:   int            = 0
    failed:    int            = 0
    errors:    List[str]      = Field(default_factory=list)


def _parse_list(raw: str) -> List[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="imgopt-batch",
        description="Batch convert PNG/JPG to AVIF + WebP with freshness checks.",
    )
    ap.add_argument("folder", type=Path, help="Folder to scan")
    ap.add_argument("--max-width", type=int, default=None, help="Resize down to width (0 keeps original; default IMGOPT_MAX_WIDTH)")
    ap.add_argument("--widths", default="", help="Comma list of widths to generate, e.g. 480,1080")
    ap.add_argument("--q-avif", type=int, default=None, help="AVIF quality (default IMGOPT_Q_AVIF or 42)")
    ap.add_argument("--q-webp", type=int, default=None, help="WebP quality (default IMGOPT_Q_WEBP or 80)")
    ap.add_argument("--formats", default="avif,webp", help="Comma list: avif,webp")
    ap.add_argument("-f", "--force", action="store_true", help="Re-encode even if outputs are fresh")
    ap.add_argument("-d", "--dry-run", action="store_true", help="Show actions without writing files")
    ap.add_argument("--cache-dir", type=Path, default=None, help="Output directory (default: <folder>/_img-opt)")
    return ap.parse_args(argv)


def collect_sources(folder: Path, exclude: Optional[Path] = None) -> List[Path]:
    found = []
    for root, dirs, files in os.walk(folder):
        root_path = Path(root)
        dirs[:] = sorted(
            d for d in dirs
            if d not in SKIP_DIRS and (exclude is None or (root_path / d).resolve() != exclude.resolve())
        )
        for name in sorted(files):
            p = root_path / name
            if p.suffix.lower() in SOURCE_EXTS:
                found.append(p.resolve())
    return found


def run_batch(
    folder: Path,
    formats: Sequence[str],
    settings: Settings,
    widths: Sequence[int] = (),
    *,
    force: bool = False,
    dry_run: bool = False,
    capabilities: Optional[Capabilities] = None,
    encoder: Optional[VariantEncoder] = None,
) -> BatchReport:
    caps    = capabilities or CapabilityProbe().detect()
    service = VariantService(settings, caps, encoder=encoder)

    wanted = []
    for fmt in (normalize_format(f) for f in formats):
        if fmt not in wanted and service.supports_format(fmt):
            wanted.append(fmt)
    if not wanted:
        logger.warning("No supported formats detected; nothing to encode.")

    report = BatchReport(created={fmt: 0 for fmt in wanted})
    sources = collect_sources(folder, exclude=Path(settings.cache_root))
    targets = list(widths) or [settings.max_width]

    for src in sources:
        report.processed += 1
        if not os.access(src, os.R_OK):
            report.failed += 1
            logger.error("Unreadable source %s", src)
            continue

        for fmt in wanted:
            quality = service.quality_for(fmt)
            for requested in targets:
                width  = service.clamp_width(src, requested)
                target = service.resolver.resolve(str(src), width, fmt, quality)
                if service.store.exists(target) and not force:
                    report.skipped += 1
                    continue
                if dry_run:
                    logger.info("[dry-run] would create %s", target.name)
                    report.created[fmt] += 1
                    continue
                try:
                    service.encoder.generate(str(src), width, fmt, target, quality)
                    report.created[fmt] += 1
                except EncodeError as exc:
                    report.failed += 1
                    logger.error("Failed %s (%s): %s", src, fmt, exc)
                    if len(report.errors) < MAX_ERRORS:
                        report.errors.append(f"{src} ({fmt}): {exc}")
    return report


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    folder: Path = args.folder
    if not folder.is_dir():
        logger.error("Folder not found: %s", folder)
        return 1

    cache_dir = args.cache_dir or folder / "_img-opt"
    widths    = [int(w) for w in _parse_list(args.widths)]
    # Environment settings first, so batch keys match the HTTP service's
    base    = Settings.from_env()
    quality = dict(base.quality)
    if args.q_avif is not None:
        quality["avif"] = args.q_avif
    if args.q_webp is not None:
        quality["webp"] = args.q_webp
    settings = Settings(**{
        **base.model_dump(),
        "cache_root":  str(cache_dir),
        "max_width":   base.max_width if args.max_width is None else args.max_width,
        "quality":     quality,
        "breakpoints": widths,
    })

    report = run_batch(
        folder,
        _parse_list(args.formats),
        settings,
        settings.breakpoints,
        force=args.force,
        dry_run=args.dry_run,
    )

    created = ", ".join(f"{fmt.upper()}={n}" for fmt, n in report.created.items()) or "none"
    logger.info("Processed : %d", report.processed)
    logger.info("Created   : %s", created)
    logger.info("Skipped   : %d", report.skipped)
    logger.info("Failed    : %d", report.failed)
    logger.info("Cache dir : %s", cache_dir)
    for line in report.errors:
        logger.info("  error: %s", line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
