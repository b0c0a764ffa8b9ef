#!/usr/bin/env python3
"""
Seed products from a JSON catalogue file (scripts/catalogue.sample.json by default).
The loader accepts a list of entries or an object with an "items"/"products" list,
and a few spellings of the common fields.

Usage:
    python scripts/seed_products.py --file path/to/catalogue.json
"""
import json
import argparse
import sys
import os
from decimal import Decimal, InvalidOperation

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.db import SessionLocal, init_db
from storefront.repositories.product_repo import ProductRepository
from storefront.utils.log import get_logger
from storefront.utils.money import round_money

log = get_logger("seed_products")

DEFAULT_SOURCE = os.path.join(os.path.dirname(__file__), "catalogue.sample.json")


def _parse_price(entry) -> Decimal:
    if entry.get("price_cents") is not None:
        return round_money(Decimal(int(entry["price_cents"])) / 100)
    raw = entry.get("price", entry.get("amount", 0))
    try:
        return round_money(raw)
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0.00")


def _normalize_entry(entry):
    """Return a dict with keys: id, name, price, inventory_count, description, category, images"""
    try:
        stock = int(entry.get("inventory_count", entry.get("stock", 0)) or 0)
    except (TypeError, ValueError):
        stock = 0

    images = entry.get("images") or []
    if not images and entry.get("image"):
        images = [entry["image"]]
    images = [img if isinstance(img, dict) else {"url": img} for img in images]

    return {
        "product_id": entry.get("id"),
        "name": entry.get("name") or entry.get("title") or "",
        "price": _parse_price(entry),
        "inventory_count": max(0, stock),
        "description": entry.get("description") or "",
        "category": entry.get("category"),
        "images": [img for img in images if img.get("url")],
    }


def load_entries(path: str):
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except ValueError as e:
            raise RuntimeError(f"Failed to parse JSON from {path}: {e}")

    if isinstance(data, dict):
        source_list = data.get("items") or data.get("products") or list(data.values())
    elif isinstance(data, list):
        source_list = data
    else:
        source_list = []
    return [_normalize_entry(e) for e in source_list if isinstance(e, dict)]


def seed_from_file(path: str, session_factory=SessionLocal) -> int:
    if not os.path.exists(path):
        raise FileNotFoundError(path)
    entries = load_entries(path)

    db = session_factory()
    repo = ProductRepository(db)
    created = 0
    try:
        for entry in entries:
            if not entry["name"]:
                continue
            repo.create_or_update(**entry)
            created += 1
        db.commit()
        log.info("Seeded products: %d", created)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    return created


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=DEFAULT_SOURCE, help="Path to a product JSON catalogue")
    args = parser.parse_args()
    if not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    init_db()
    seed_from_file(args.file)
