import json
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import HTTPException
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from api.poster import build_poster_from_payload
from auth import create_access_token, require_admin, verify_password
from blob_store import BlobStore, create_blob_store, generate_unique_filename, get_mime_type
from errors import BlobStoreFailure, PosterError
from logging_config import setup_logging
from models import PosterField, UploadedFile
from template_store import TemplateStore

setup_logging()

app = FastAPI(title="Poster Maker")

public_dir = os.path.join(os.path.dirname(__file__), "public")

# Local blob store files (template images and generated posters)
uploads_dir = config.get_local_storage_dir()
os.makedirs(uploads_dir, exist_ok=True)
app.mount(config.LOCAL_STORAGE_URL_PREFIX, StaticFiles(directory=uploads_dir), name="uploads")


# ========= DEPENDENCIES =========

@lru_cache(maxsize=1)
def get_template_store() -> TemplateStore:
    store = TemplateStore(config.get_database_url())
    store.create_all()
    return store


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    return create_blob_store()


# ========= ERROR HANDLING =========

@app.exception_handler(PosterError)
async def poster_error_handler(request: Request, exc: PosterError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "kind": exc.kind})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


# ========= UPLOAD HELPERS =========

async def _read_upload(upload: UploadFile) -> UploadedFile:
    """Read and validate one multipart upload."""
    content_type = (upload.content_type or "").lower()
    if content_type not in config.ALLOWED_UPLOAD_MIME_TYPES:
        logger.warning(f"Rejected upload {upload.filename!r} with MIME type {content_type!r}")
        raise HTTPException(status_code=400, detail="Only image files are allowed")
    content = await upload.read()
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large")
    return UploadedFile(filename=upload.filename or "", content=content, content_type=content_type)


async def _read_uploads(uploads: Optional[List[UploadFile]], limit: int, name: str) -> List[UploadedFile]:
    uploads = [u for u in (uploads or []) if u is not None and u.filename]
    if len(uploads) > limit:
        raise HTTPException(status_code=400, detail=f"Too many {name}: at most {limit} allowed")
    return [await _read_upload(u) for u in uploads]


def _parse_fields_form(raw: Optional[str]) -> List[PosterField]:
    """Parse the template editor's fields JSON; unlike textFields this is strict."""
    try:
        data = json.loads(raw) if raw else []
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="fields must be valid JSON")
    if not isinstance(data, list):
        raise HTTPException(status_code=400, detail="fields must be a JSON list")
    try:
        return [PosterField.model_validate(entry) for entry in data]
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid field definition: {e.errors()[0]['msg']}")


def _store_template_image(blob_store: BlobStore, upload: UploadedFile) -> str:
    key = generate_unique_filename(upload.filename, config.TEMPLATES_PREFIX)
    return blob_store.store(upload.content, key, get_mime_type(upload.filename))


def _delete_blob_quietly(blob_store: BlobStore, url: str) -> None:
    try:
        blob_store.delete(url)
        logger.info(f"Template file deleted: {url}")
    except BlobStoreFailure as e:
        logger.warning(f"Could not delete template file {url}: {e.message}")


# ========= PAGES =========

def _page(name: str):
    path = os.path.join(public_dir, name)
    if os.path.isfile(path):
        return FileResponse(path, media_type="text/html")
    return Response(status_code=404)


@app.get("/")
async def index():
    return _page("index.html")


@app.get("/admin")
async def admin_page():
    return _page("admin.html")


# ========= AUTH =========

class LoginRequest(BaseModel):
    username: str
    password: str


@app.post("/api/admin/login")
def login(credentials: LoginRequest, store: TemplateStore = Depends(get_template_store)):
    admin = store.get_admin_password_hash(credentials.username)
    if admin is None or not verify_password(credentials.password, admin[1]):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    admin_id = admin[0]
    token = create_access_token(admin_id, credentials.username)
    return {"token": token, "admin": {"id": admin_id, "username": credentials.username}}


# ========= CATEGORIES =========

class CategoryRequest(BaseModel):
    name: str
    description: Optional[str] = None


@app.get("/api/categories")
def list_categories(store: TemplateStore = Depends(get_template_store)):
    return [c.model_dump(mode="json") for c in store.list_categories()]


@app.post("/api/categories")
def create_category(
    category: CategoryRequest,
    store: TemplateStore = Depends(get_template_store),
    admin: Dict[str, Any] = Depends(require_admin),
):
    created = store.create_category(category.name, category.description)
    logger.info(f"Admin {admin.get('username')} created category {created.id} {created.name!r}")
    return created.model_dump(mode="json")


# ========= TEMPLATES =========

@app.get("/api/templates")
def list_templates(category_id: Optional[str] = None, store: TemplateStore = Depends(get_template_store)):
    return [t.to_payload() for t in store.list_templates(category_id)]


@app.post("/api/templates")
async def create_template(
    template: Optional[UploadFile] = File(None),
    name: str = Form(...),
    category_id: Optional[str] = Form(None),
    fields: Optional[str] = Form("[]"),
    store: TemplateStore = Depends(get_template_store),
    blob_store: BlobStore = Depends(get_blob_store),
    admin: Dict[str, Any] = Depends(require_admin),
):
    if template is None or not template.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    upload = await _read_upload(template)
    parsed_fields = _parse_fields_form(fields)

    image_url = await run_in_threadpool(_store_template_image, blob_store, upload)
    created = await run_in_threadpool(store.create_template, name, category_id, image_url, parsed_fields)
    logger.info(f"Admin {admin.get('username')} created template {created.id} {created.name!r}")
    return created.to_payload()


@app.get("/api/admin/templates/{template_id}")
def get_template(
    template_id: str,
    store: TemplateStore = Depends(get_template_store),
    admin: Dict[str, Any] = Depends(require_admin),
):
    return store.get_template(template_id).to_payload()


@app.put("/api/admin/templates/{template_id}")
async def update_template(
    template_id: str,
    template: Optional[UploadFile] = File(None),
    name: Optional[str] = Form(None),
    category_id: Optional[str] = Form(None),
    fields: Optional[str] = Form(None),
    store: TemplateStore = Depends(get_template_store),
    blob_store: BlobStore = Depends(get_blob_store),
    admin: Dict[str, Any] = Depends(require_admin),
):
    parsed_fields = _parse_fields_form(fields) if fields is not None else None
    # Fail with 404 before anything is uploaded
    await run_in_threadpool(store.get_template, template_id)

    image_url = None
    if template is not None and template.filename:
        upload = await _read_upload(template)
        image_url = await run_in_threadpool(_store_template_image, blob_store, upload)

    updated, old_image_path = await run_in_threadpool(
        store.update_template, template_id, name, category_id, parsed_fields, image_url
    )
    if old_image_path:
        await run_in_threadpool(_delete_blob_quietly, blob_store, old_image_path)
    logger.info(f"Admin {admin.get('username')} updated template {updated.id}")
    return updated.to_payload()


@app.delete("/api/admin/templates/{template_id}")
def delete_template(
    template_id: str,
    store: TemplateStore = Depends(get_template_store),
    blob_store: BlobStore = Depends(get_blob_store),
    admin: Dict[str, Any] = Depends(require_admin),
):
    deleted = store.delete_template(template_id)
    if deleted.image_path:
        _delete_blob_quietly(blob_store, deleted.image_path)
    logger.info(f"Admin {admin.get('username')} deleted template {deleted.id}")
    return {"success": True, "message": "Template deleted successfully"}


# ========= DOWNLOADS =========

@app.post("/api/record-download")
def record_download(payload: Dict[str, Any] = Body(default={}), store: TemplateStore = Depends(get_template_store)):
    template_id = payload.get("template_id")
    user_name = payload.get("user_name")
    user_mobile = payload.get("user_mobile")
    if not template_id or not user_name or not user_mobile:
        raise HTTPException(
            status_code=400,
            detail="Missing required fields: template_id, user_name, user_mobile",
        )
    download = store.create_download(template_id, str(user_name), str(user_mobile), payload.get("generated_path"))
    return {"success": True, "download": download.model_dump(mode="json")}


@app.get("/api/admin/downloads")
def list_downloads(
    store: TemplateStore = Depends(get_template_store),
    admin: Dict[str, Any] = Depends(require_admin),
):
    return [d.model_dump(mode="json") for d in store.list_downloads()]


# ========= POSTER GENERATION =========

@app.post("/api/generate-poster")
async def create_poster(
    template_id: Optional[str] = Form(None, alias="templateId"),
    text_fields: Optional[str] = Form(None, alias="textFields"),
    images: Optional[List[UploadFile]] = File(None),
    logos: Optional[List[UploadFile]] = File(None),
    store: TemplateStore = Depends(get_template_store),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """
    Generate a poster from a template and the user's inputs.

    Multipart form:
      templateId  - template to fill
      textFields  - JSON object of field id -> text (malformed JSON is ignored)
      images      - uploads for image fields, ideally named image_<fieldId>
      logos       - uploads for logo fields, ideally named logo_<fieldId>
    """
    payload = {
        "templateId": template_id,
        "textFields": text_fields,
        "images": await _read_uploads(images, config.MAX_IMAGE_UPLOADS, "images"),
        "logos": await _read_uploads(logos, config.MAX_LOGO_UPLOADS, "logos"),
    }
    result = await run_in_threadpool(
        build_poster_from_payload, payload, template_store=store, blob_store=blob_store
    )
    return result.to_payload()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("service:app", host="0.0.0.0", port=config.PORT)
