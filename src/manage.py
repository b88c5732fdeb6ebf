"""Storefront store management CLI.

Usage:
    python src/manage.py seed-products products.json   # Register products with stock
    python src/manage.py flush-store                   # Delete every key in the store
"""

import argparse
import json
import sys
from decimal import Decimal
from pathlib import Path

from ordering.domain import build_storefront
from shared.config import Settings
from shared.logging import configure_logging


def seed_products(path: Path) -> int:
    """Register every product listed in a JSON array and return how many were added.

    Each entry takes ``name``, ``sku``, ``price`` and optionally
    ``discount_price``, ``stock`` and ``images``.
    """
    settings = Settings.from_env()
    configure_logging(settings)
    storefront = build_storefront(settings)

    entries = json.loads(path.read_text(encoding="utf-8"))
    for entry in entries:
        product = storefront.catalog.register(
            name=entry["name"],
            sku=entry["sku"],
            price=Decimal(str(entry["price"])),
            discount_price=Decimal(str(entry["discount_price"])) if entry.get("discount_price") else None,
            initial_stock=int(entry.get("stock", 0)),
            images=entry.get("images"),
        )
        print(f"  {product.sku:<20} {product.id}")
    return len(entries)


def flush_store() -> None:
    settings = Settings.from_env()
    if settings.is_production:
        raise SystemExit("Refusing to flush a production store")
    build_storefront(settings).client.flushdb()


def main():
    parser = argparse.ArgumentParser(description="Storefront store management")
    subparsers = parser.add_subparsers(dest="command")

    seed_parser = subparsers.add_parser("seed-products", help="Register products from a JSON file")
    seed_parser.add_argument("path", type=Path)

    subparsers.add_parser("flush-store", help="Delete every key in the configured store")

    args = parser.parse_args()

    if args.command == "seed-products":
        count = seed_products(args.path)
        print(f"Seeded {count} products")
    elif args.command == "flush-store":
        flush_store()
        print("Store flushed")
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
