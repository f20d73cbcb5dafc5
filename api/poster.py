from typing import Any, Dict, List, Optional

from loguru import logger

from blob_store import BlobStore
from models import GenerationRequest, GenerationResult, UploadedFile
from poster_compositor import generate_poster, parse_text_fields
from template_store import TemplateStore


def build_poster_from_payload(
    payload: Dict[str, Any],
    *,
    template_store: TemplateStore,
    blob_store: BlobStore,
) -> GenerationResult:
    """
    Pure logic function that:
    - Receives a dict representing the decoded request
    - Returns the GenerationResult of a single generated poster.

    Expected payload structure:
    {
      "templateId": "12",                       # required
      "textFields": "{\"field_1\": \"Hi\"}",    # JSON string or dict, optional
      "images": [UploadedFile, ...],             # uploads for image fields, optional
      "logos": [UploadedFile, ...]               # uploads for logo fields, optional
    }

    A malformed textFields value is treated as an empty mapping.

    Raises:
        TemplateNotFound: unknown templateId
        TemplateImageUnavailable: the template's base image cannot be loaded
        BlobStoreFailure: the generated poster cannot be stored
    """
    template_id: Optional[Any] = payload.get("templateId")
    images: List[UploadedFile] = list(payload.get("images") or [])
    logos: List[UploadedFile] = list(payload.get("logos") or [])
    text_fields = parse_text_fields(payload.get("textFields"))

    template = template_store.get_template(template_id)

    logger.info(
        f"Generating poster for template {template.id}: "
        f"{len(text_fields)} text value(s), {len(images)} image(s), {len(logos)} logo(s)"
    )

    request = GenerationRequest(
        template_id=str(template.id),
        text_fields=text_fields,
        images=images,
        logos=logos,
    )
    return generate_poster(template, request, blob_store)
