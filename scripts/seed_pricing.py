#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from design_studio.core.database import SessionLocal, unit_of_work  # noqa: E402
from design_studio.core.logging_setup import configure_logging  # noqa: E402
from design_studio.models.pricing import ProductPricing  # noqa: E402

logger = logging.getLogger("seed_pricing")

DEPARTMENTS = [
    ("sell_sheets", "Sell Sheets", "Professional sell sheet design", 1, "299.00"),
    ("virtual_prototypes", "Virtual Prototypes", "3D virtual prototype rendering", 2, "499.00"),
    ("line_drawings", "Line Drawings", "Technical line drawings", 3, "399.00"),
    ("design_package", "Design Package", "Virtual Prototype followed by a Sell Sheet", None, "598.00"),
]

ADD_ONS = [
    ("rush_delivery", "Rush Delivery", "Expedited delivery within 3-5 business days", "150.00"),
    ("extra_revision", "Extra Revision", "Additional revision beyond included revisions", "75.00"),
    ("source_files", "Source Files", "Editable source files (AI, PSD, etc.)", "100.00"),
    ("multiple_concepts", "Multiple Concepts", "Additional design concept variations", "200.00"),
]

VP_ADD_ONS = [
    ("vp_ar_upgrade", "AR Upgrade", "99.00"),
    ("vp_ar_virtual_prototype", "AR Virtual Prototype", "99.00"),
    ("vp_animated_video_rotation", "Animated Video - Rotation", "300.00"),
    ("vp_animated_video_exploded", "Animated Video - Exploded View", "350.00"),
    ("vp_animated_video_both", "Animated Video - Rotation + Exploded", "400.00"),
]


def build_default_catalogue() -> list[ProductPricing]:
    products = [
        ProductPricing(
            product_key=key,
            product_name=name,
            product_description=description,
            category="service",
            department_id=department_id,
            price=Decimal(price),
        )
        for key, name, description, department_id, price in DEPARTMENTS
    ]
    products.extend(
        ProductPricing(
            product_key=key,
            product_name=name,
            product_description=description,
            category="addon",
            price=Decimal(price),
        )
        for key, name, description, price in ADD_ONS
    )
    products.extend(
        ProductPricing(
            product_key=key,
            product_name=name,
            category="vp_addon",
            parent_product_key="virtual_prototypes",
            price=Decimal(price),
        )
        for key, name, price in VP_ADD_ONS
    )
    return products


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the default (untiered) price catalogue.")
    parser.add_argument("--force", action="store_true", help="Seed even when products already exist")
    return parser.parse_args()


def main() -> int:
    configure_logging()
    args = parse_args()

    db = SessionLocal()
    try:
        if db.query(ProductPricing.id).first() is not None and not args.force:
            logger.warning("products already exist; skipping seed")
            return 0
        products = build_default_catalogue()
        with unit_of_work(db):
            db.add_all(products)
        logger.info("pricing seed completed products=%s", len(products))
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
