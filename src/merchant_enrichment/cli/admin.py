"""Admin command line for the merchant directory and resolver."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

import anyio

from merchant_enrichment.normalization.normalizer import build_key
from merchant_enrichment.normalization.reference_data import KNOWN_PLATFORMS
from merchant_enrichment.services.factories import build_merchant_directory_store, build_merchant_resolver
from merchant_enrichment.services.merchant_enrichment import batch_resolve_merchants, record_merchant_correction
from merchant_enrichment.settings import Settings, get_settings
from merchant_enrichment.store.merchant_directory import MerchantDirectoryStore
from merchant_enrichment.store.schema import DirectorySource, GlobalScope

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Return parsed CLI arguments.

    Args:
        argv: Optional list of CLI arguments. When ``None``, defaults to ``sys.argv``.
    """

    parser = argparse.ArgumentParser(description="Merchant enrichment administration")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the merchant directory table when missing")
    sub.add_parser("seed-platforms", help="Write global directory rows for known platforms")

    resolve = sub.add_parser("resolve", help="Resolve one or more descriptors")
    resolve.add_argument("descriptors", nargs="+", help="Raw statement descriptors")
    resolve.add_argument("--family-id", default=None, help="Resolve on behalf of this family")

    batch = sub.add_parser("batch", help="Resolve descriptors listed in a file, one per line")
    batch.add_argument("file", type=Path, help="Text file with one descriptor per line")
    batch.add_argument("--family-id", default=None, help="Resolve on behalf of this family")

    correct = sub.add_parser("correct", help="Record a family correction")
    correct.add_argument("descriptor", help="Raw statement descriptor")
    correct.add_argument("--family-id", required=True)
    correct.add_argument("--category-id", required=True)
    correct.add_argument("--subcategory-id", default=None)
    correct.add_argument("--merchant-label", default=None)

    return parser.parse_args(argv)


def seed_platform_entries(store: MerchantDirectoryStore, settings: Settings) -> int:
    """Upsert one global row per known platform that implies a category.

    Returns:
        Number of rows written.
    """

    written = 0
    for rule in KNOWN_PLATFORMS:
        if not rule.category_hint:
            continue
        confidence = (
            settings.resolver.intermediary_confidence
            if rule.is_intermediary
            else settings.resolver.platform_confidence
        )
        store.upsert_by_natural_key(
            GlobalScope(),
            build_key([rule.platform]),
            {
                "merchant_name_display": rule.platform,
                "category_id_suggested": rule.category_hint,
                "subcategory_id_suggested": rule.subcategory_hint,
                "confidence_default": confidence,
                "evidence_summary": f"Plataforma identificada: {rule.platform}",
                "source": DirectorySource.PLATFORM_DETECTED,
                "detected_platform": rule.platform,
                "is_intermediary": rule.is_intermediary,
            },
        )
        written += 1
    LOGGER.info("Seeded %s platform rows into the merchant directory", written)
    return written


def _read_descriptors(path: Path) -> list[str]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip()]


def _dump(payload: object) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
    sys.stdout.write("\n")


def run(args: argparse.Namespace, settings: Settings) -> int:
    """Execute the selected command and return the process exit code."""

    if args.command == "init-db":
        build_merchant_directory_store(settings).create_schema()
        LOGGER.info("Merchant directory schema ready")
        return 0

    if args.command == "seed-platforms":
        store = build_merchant_directory_store(settings)
        store.create_schema()
        _dump({"seeded": seed_platform_entries(store, settings)})
        return 0

    if args.command == "correct":
        store = build_merchant_directory_store(settings)
        recorded = anyio.run(
            lambda: record_merchant_correction(
                args.family_id,
                args.descriptor,
                args.merchant_label,
                args.category_id,
                args.subcategory_id,
                store=store,
                settings=settings,
            )
        )
        _dump({"recorded": recorded})
        return 0 if recorded else 1

    resolver = build_merchant_resolver(settings)
    if args.command == "resolve":
        descriptors = list(args.descriptors)
    else:
        if not args.file.exists():
            LOGGER.error("Descriptor file not found: %s", args.file)
            return 2
        descriptors = _read_descriptors(args.file)

    results = anyio.run(
        lambda: batch_resolve_merchants(descriptors, args.family_id, resolver=resolver, settings=settings)
    )
    _dump({raw: resolution.model_dump(mode="json") for raw, resolution in results.items()})
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    return run(args, settings)


if __name__ == "__main__":
    sys.exit(main())
