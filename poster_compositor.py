"""
Poster Compositor

Renders a filled-in template: percentage-based field geometry is mapped onto
the base image, then text, image and logo fields are painted in template
order (later fields on top). Missing or malformed user input degrades to
"field not drawn"; only an unreadable base image or a storage failure aborts.
"""

import argparse
import json
import os
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger
from PIL import Image, ImageDraw

import config
import image_utils
from blob_store import BlobStore, LocalBlobStore, get_mime_type
from errors import BlobFetchError, FieldAssetMissing, FieldDataMalformed, TemplateImageUnavailable
from models import (
    FieldType,
    GenerationRequest,
    GenerationResult,
    PosterField,
    Template,
    UploadedFile,
)

PixelBox = Tuple[int, int, int, int]  # (x, y, width, height)

_UPLOAD_NAME_PREFIX = {
    FieldType.IMAGE: "image_",
    FieldType.LOGO: "logo_",
}


# ========= GEOMETRY =========

def pixel_box(field: PosterField, image_width: int, image_height: int) -> PixelBox:
    """Convert a field's percentage geometry to pixels. Values are not clamped."""
    return (
        round(field.x / 100 * image_width),
        round(field.y / 100 * image_height),
        round(field.width / 100 * image_width),
        round(field.height / 100 * image_height),
    )


# ========= REQUEST PARSING =========

def _decode_text_fields(raw: Any) -> Dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise FieldDataMalformed(f"textFields is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise FieldDataMalformed(f"textFields must be an object, got {type(raw).__name__}")
    return raw


def parse_text_fields(raw: Any) -> Dict[str, str]:
    """
    Parse the textFields payload leniently.

    Accepts a dict or its JSON encoding. Anything malformed is treated as
    "no text fields supplied" so the poster is still generated.

    Returns:
        Mapping of field id -> text; None values are dropped, others stringified
    """
    try:
        decoded = _decode_text_fields(raw)
    except FieldDataMalformed as e:
        logger.warning(f"{e.kind}: {e.message}; applying no text fields")
        return {}

    return {
        str(key): value if isinstance(value, str) else str(value)
        for key, value in decoded.items()
        if value is not None and not isinstance(value, (dict, list))
    }


def _upload_stem(upload: UploadedFile) -> str:
    """File name without a known image extension; other dots belong to the field id."""
    name = os.path.basename(upload.filename or "")
    stem, ext = os.path.splitext(name)
    if ext and get_mime_type(name) != "application/octet-stream":
        return stem
    return name


def match_uploads(
    fields: Iterable[PosterField],
    uploads: List[UploadedFile],
    field_type: FieldType,
) -> Dict[str, UploadedFile]:
    """
    Associate uploaded files with fields of one type.

    Uploads named "image_<fieldId>" / "logo_<fieldId>" (extension ignored)
    go to that field. The remaining uploads are handed out in order to the
    remaining fields of the type, in template order. Surplus uploads are
    ignored with a warning; surplus fields stay blank.
    """
    typed_fields = [f for f in fields if f.type == field_type]
    prefix = _UPLOAD_NAME_PREFIX[field_type]
    field_ids = {f.id for f in typed_fields}

    matched: Dict[str, UploadedFile] = {}
    unnamed: List[UploadedFile] = []
    for upload in uploads:
        stem = _upload_stem(upload)
        field_id = stem[len(prefix):] if stem.startswith(prefix) else None
        if field_id in field_ids and field_id not in matched:
            matched[field_id] = upload
        else:
            unnamed.append(upload)

    remaining_fields = [f for f in typed_fields if f.id not in matched]
    for field, upload in zip(remaining_fields, unnamed):
        matched[field.id] = upload

    surplus = len(unnamed) - len(remaining_fields)
    if surplus > 0:
        logger.warning(
            f"{surplus} {field_type.value} upload(s) ignored: "
            f"{len(uploads)} uploaded for {len(typed_fields)} {field_type.value} field(s)"
        )
    return matched


# ========= RENDERING =========

def render_text_field(img: Image.Image, field: PosterField, box: PixelBox, value: str) -> None:
    """Draw a text value in the field's box using its font size, family, color and alignment."""
    font = image_utils.load_font(field.font_size, field.font_family)
    fill = image_utils.parse_color(field.color)
    text_width = max(image_utils.get_text_width(line, font) for line in value.splitlines() or [value])
    if text_width > box[2]:
        logger.debug(f"Field {field.id}: text is {text_width}px wide, overflows its {box[2]}px box")
    draw = ImageDraw.Draw(img)
    image_utils.draw_aligned_text(draw, box, value, font, fill, field.align)


def paste_upload(img: Image.Image, field: PosterField, box: PixelBox, upload: UploadedFile) -> None:
    """
    Stretch an uploaded image to the field's box and paste it, fully opaque.

    Raises:
        FieldAssetMissing: if the upload cannot be decoded or the box is empty
    """
    x, y, width, height = box
    if width <= 0 or height <= 0:
        raise FieldAssetMissing(f"Field {field.id} has an empty pixel box {box}")

    try:
        overlay = image_utils.decode_image(upload.content)
    except ValueError as e:
        raise FieldAssetMissing(f"Upload {upload.filename!r} for field {field.id} is unreadable: {e}") from e

    try:
        resized = image_utils.stretch_to_box(overlay, width, height)
        try:
            img.paste(resized, (x, y))
        finally:
            resized.close()
    finally:
        overlay.close()


def compose_poster(
    base: Image.Image,
    fields: List[PosterField],
    text_fields: Dict[str, str],
    images: Optional[List[UploadedFile]] = None,
    logos: Optional[List[UploadedFile]] = None,
) -> Image.Image:
    """
    Compose a poster in memory.

    The base image is not modified; a new RGB working image is returned and
    the caller owns it.

    Args:
        base: Decoded template base image
        fields: Template fields in z-order
        text_fields: Field id -> text value
        images: Uploads for image fields
        logos: Uploads for logo fields

    Returns:
        The composed image
    """
    img = base.convert("RGB") if base.mode != "RGB" else base.copy()
    image_width, image_height = img.size

    uploads = {
        FieldType.IMAGE: match_uploads(fields, images or [], FieldType.IMAGE),
        FieldType.LOGO: match_uploads(fields, logos or [], FieldType.LOGO),
    }

    try:
        for field in fields:
            box = pixel_box(field, image_width, image_height)

            if field.type == FieldType.TEXT:
                value = text_fields.get(field.id)
                if value is None or not value.strip():
                    continue
                logger.debug(f"Field {field.id}: text at {box} align={field.align.value}")
                render_text_field(img, field, box, value)
                continue

            upload = uploads[field.type].get(field.id)
            if upload is None:
                logger.debug(f"Field {field.id}: no {field.type.value} uploaded, skipping")
                continue
            logger.debug(f"Field {field.id}: {field.type.value} {upload.filename!r} at {box}")
            try:
                paste_upload(img, field, box, upload)
            except FieldAssetMissing as e:
                logger.warning(f"{e.kind}: {e.message}; skipping field")
    except Exception:
        img.close()
        raise

    return img


# ========= PIPELINE =========

def load_template_image(template: Template, blob_store: BlobStore) -> Image.Image:
    """
    Fetch and decode a template's base image.

    Raises:
        TemplateImageUnavailable: if it cannot be fetched or decoded
    """
    try:
        return blob_store.fetch_image(template.image_path)
    except BlobFetchError as e:
        logger.error(f"Template {template.id} image unavailable: {e.message}")
        raise TemplateImageUnavailable(
            f"Template image could not be loaded: {template.image_path}"
        ) from e


def generate_poster(
    template: Template,
    request: GenerationRequest,
    blob_store: BlobStore,
    quality: int = config.OUTPUT_JPEG_QUALITY,
) -> GenerationResult:
    """
    Generate a poster and persist it through the blob store.

    This is the main entry point for poster generation. Every decoded image
    is released before returning, whether composition succeeds or not.

    Args:
        template: Template to fill
        request: User-supplied text values and uploads
        blob_store: Where the base image comes from and the poster goes to
        quality: JPEG quality of the output

    Returns:
        GenerationResult with the durable poster URL

    Raises:
        TemplateImageUnavailable: base image could not be loaded
        BlobStoreFailure: the poster could not be stored
    """
    base = load_template_image(template, blob_store)
    try:
        logger.info(
            f"Composing template {template.id} ({base.width}x{base.height}, "
            f"{len(template.fields)} fields, {len(request.images)} images, {len(request.logos)} logos)"
        )
        poster = compose_poster(base, template.fields, request.text_fields, request.images, request.logos)
    finally:
        base.close()

    try:
        data = image_utils.encode_jpeg(poster, quality=quality)
    finally:
        poster.close()

    filename = f"poster_{uuid.uuid4()}.jpg"
    url = blob_store.store(data, f"{config.GENERATED_PREFIX}{filename}", "image/jpeg")
    logger.info(f"Generated {filename} -> {url}")
    return GenerationResult(success=True, filename=filename, poster_url=url)


# ========= CLI =========

def _parse_assignments(values: List[str], option: str) -> List[Tuple[str, str]]:
    pairs = []
    for item in values or []:
        if "=" not in item:
            raise SystemExit(f"{option} expects FIELD_ID=VALUE, got {item!r}")
        key, value = item.split("=", 1)
        pairs.append((key.strip(), value))
    return pairs


def _read_upload(kind: str, field_id: str, path: str) -> UploadedFile:
    with open(path, "rb") as f:
        content = f.read()
    ext = os.path.splitext(path)[1]
    return UploadedFile(filename=f"{kind}_{field_id}{ext}", content=content)


def main():
    parser = argparse.ArgumentParser(description="Render a poster from a template JSON file")
    parser.add_argument("template", help="Template JSON file with image_path and fields")
    parser.add_argument("--text", action="append", default=[], help="FIELD_ID=TEXT (repeatable)")
    parser.add_argument("--image", action="append", default=[], help="FIELD_ID=PATH (repeatable)")
    parser.add_argument("--logo", action="append", default=[], help="FIELD_ID=PATH (repeatable)")
    parser.add_argument("--output-dir", default="output", help="Where the poster is written")
    parser.add_argument("--quality", type=int, default=config.OUTPUT_JPEG_QUALITY)
    args = parser.parse_args()

    from logging_config import setup_logging
    setup_logging()

    with open(args.template, "r", encoding="utf-8") as f:
        data = json.load(f)
    data.setdefault("id", 0)
    data.setdefault("name", os.path.splitext(os.path.basename(args.template))[0])
    template = Template.model_validate(data)

    request = GenerationRequest(
        template_id=str(template.id),
        text_fields=dict(_parse_assignments(args.text, "--text")),
        images=[_read_upload("image", k, v) for k, v in _parse_assignments(args.image, "--image")],
        logos=[_read_upload("logo", k, v) for k, v in _parse_assignments(args.logo, "--logo")],
    )

    store = LocalBlobStore(args.output_dir, url_prefix=os.path.abspath(args.output_dir))
    result = generate_poster(template, request, store, quality=args.quality)
    print(f"Generated file: {result.poster_url}")


if __name__ == "__main__":
    main()
