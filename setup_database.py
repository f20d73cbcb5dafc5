#!/usr/bin/env python3
"""
Create the template store tables and seed default data.

Usage:
    python setup_database.py                 # tables, default admin, default categories
    python setup_database.py --with-samples  # ...plus sample templates with generated base images
"""

import argparse

from loguru import logger
from PIL import Image, ImageDraw

import config
import image_utils
from auth import hash_password
from blob_store import BlobStore, create_blob_store
from logging_config import setup_logging
from models import TextAlign
from template_builder import TemplateBuilder
from template_store import TemplateStore

SAMPLE_SIZE = (800, 1000)


def seed_admin(store: TemplateStore, username: str, password: str) -> bool:
    """Create the admin user unless it exists. Returns True when created."""
    if store.get_admin_password_hash(username) is not None:
        logger.info(f"Admin user {username!r} already exists")
        return False
    store.create_admin(username, hash_password(password))
    logger.info(f"Admin user {username!r} created")
    return True


def seed_categories(store: TemplateStore) -> bool:
    """Create the default categories when there are none. Returns True when created."""
    if store.list_categories():
        logger.info("Categories already exist")
        return False
    for category in config.DEFAULT_CATEGORIES:
        store.create_category(category["name"], category["description"])
    logger.info(f"{len(config.DEFAULT_CATEGORIES)} default categories created")
    return True


def _sample_background(title: str, bg_color: tuple, accent_color: tuple) -> bytes:
    """Draw a plain sample base image with a banner and a title."""
    width, height = SAMPLE_SIZE
    img = Image.new("RGB", (width, height), bg_color)
    draw = ImageDraw.Draw(img)

    # Top and bottom banners
    draw.rectangle([0, 0, width, 90], fill=accent_color)
    draw.rectangle([0, height - 140, width, height], fill=accent_color)

    # Frame for the photo area
    draw.rectangle([160, 300, width - 160, 700], outline=accent_color, width=6)

    title_font = image_utils.load_font(64)
    draw.text((width // 2, 150), title, font=title_font, fill=accent_color, anchor="ma")

    data = image_utils.encode_jpeg(img)
    img.close()
    return data


def _sample_templates(category_ids: dict) -> list:
    festival = TemplateBuilder("Festival Greeting", category_ids.get("Festival"))
    festival.add_logo_field(x=5, y=1, width=10, height=7, label="Your Logo")
    festival.add_image_field(x=20, y=30, width=60, height=40, label="Your Photo")
    festival.add_text_field(x=10, y=87, width=80, height=5, font_size=40, color="#FFFFFF",
                            align=TextAlign.CENTER, label="Business Name", required=True)
    festival.add_text_field(x=10, y=93, width=80, height=4, font_size=26, color="#FFFFFF",
                            align=TextAlign.CENTER, label="Contact Number")

    event = TemplateBuilder("Event Announcement", category_ids.get("Event"))
    event.add_text_field(x=10, y=75, width=80, height=6, font_size=48, color="#1A237E",
                         align=TextAlign.LEFT, label="Event Name", required=True)
    event.add_text_field(x=10, y=82, width=80, height=4, font_size=28, color="#1A237E",
                         align=TextAlign.LEFT, label="Date and Venue")
    event.add_logo_field(x=80, y=88, width=12, height=10, label="Organizer Logo")

    return [
        (festival, _sample_background("Happy Festival", (255, 243, 224), (191, 54, 12))),
        (event, _sample_background("You're Invited", (232, 234, 246), (26, 35, 126))),
    ]


def seed_sample_templates(store: TemplateStore, blob_store: BlobStore) -> int:
    """Store sample base images and create sample templates. Returns how many were created."""
    existing = {t.name for t in store.list_templates()}
    category_ids = {c.name: c.id for c in store.list_categories()}

    created = 0
    for builder, image_bytes in _sample_templates(category_ids):
        if builder.name in existing:
            logger.info(f"Sample template {builder.name!r} already exists")
            continue
        key = f"{config.TEMPLATES_PREFIX}sample_{builder.name.lower().replace(' ', '_')}.jpg"
        builder.image_path = blob_store.store(image_bytes, key, "image/jpeg")
        template = store.create_template(builder.name, builder.category_id, builder.image_path, builder.fields)
        logger.info(f"Sample template {template.id} {template.name!r} created with {len(template.fields)} fields")
        created += 1
    return created


def main():
    parser = argparse.ArgumentParser(description="Create poster maker tables and seed default data")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy URL (default: DATABASE_URL)")
    parser.add_argument("--with-samples", action="store_true", help="Also create sample templates")
    args = parser.parse_args()

    setup_logging()

    store = TemplateStore(args.database_url or config.get_database_url())
    store.create_all()
    logger.info("Database tables ready")

    seed_admin(store, config.DEFAULT_ADMIN_USERNAME, config.DEFAULT_ADMIN_PASSWORD)
    seed_categories(store)
    if args.with_samples:
        seed_sample_templates(store, create_blob_store())

    logger.info("Database setup completed successfully!")


if __name__ == "__main__":
    main()
