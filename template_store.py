"""
Template Store: categories, templates, downloads and admin users in SQL.

Templates keep their field list as JSON text; get_template() hands the
compositor a parsed, ordered list of PosterField objects so it never sees the
storage representation.
"""

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Iterable, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from errors import TemplateNotFound
from models import Category, Download, PosterField, Template


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class CategoryRecord(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    templates: Mapped[List["TemplateRecord"]] = relationship(back_populates="category")


class TemplateRecord(Base):
    __tablename__ = "templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    image_path: Mapped[str] = mapped_column(Text, nullable=False)
    fields: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    category: Mapped[Optional[CategoryRecord]] = relationship(back_populates="templates")


class DownloadRecord(Base):
    __tablename__ = "downloads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("templates.id", ondelete="CASCADE"), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_mobile: Mapped[str] = mapped_column(String(64), nullable=False)
    generated_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    template: Mapped[Optional[TemplateRecord]] = relationship()


class AdminUserRecord(Base):
    __tablename__ = "admin_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


# ========= SERIALIZATION =========

def parse_fields(raw: Optional[str]) -> List[PosterField]:
    """
    Deserialize a stored field list.

    A malformed list reads back as empty; malformed entries are dropped.
    """
    try:
        data = json.loads(raw) if raw else []
    except json.JSONDecodeError as e:
        logger.warning(f"Stored fields are not valid JSON ({e}); treating as empty")
        return []
    if not isinstance(data, list):
        logger.warning("Stored fields are not a list; treating as empty")
        return []

    fields = []
    for entry in data:
        try:
            fields.append(PosterField.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Dropping malformed field {entry!r}: {e.error_count()} error(s)")
    return fields


def serialize_fields(fields: Iterable[Any]) -> str:
    """Serialize PosterField objects or raw dicts to JSON text, validating dicts."""
    payload = []
    for field in fields:
        if not isinstance(field, PosterField):
            field = PosterField.model_validate(field)
        payload.append(field.to_payload())
    return json.dumps(payload)


def _to_template(record: TemplateRecord) -> Template:
    return Template(
        id=record.id,
        name=record.name,
        category_id=record.category_id,
        category_name=record.category.name if record.category else None,
        image_path=record.image_path,
        fields=parse_fields(record.fields),
        created_at=record.created_at,
    )


def _to_category(record: CategoryRecord) -> Category:
    return Category(
        id=record.id,
        name=record.name,
        description=record.description,
        created_at=record.created_at,
    )


def _to_download(record: DownloadRecord) -> Download:
    template = record.template
    return Download(
        id=record.id,
        template_id=record.template_id,
        user_name=record.user_name,
        user_mobile=record.user_mobile,
        generated_path=record.generated_path,
        template_name=template.name if template else None,
        category_name=template.category.name if template and template.category else None,
        created_at=record.created_at,
    )


def _as_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ========= STORE =========

class TemplateStore:
    """CRUD over categories, templates, downloads and admin users."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        kwargs: Dict[str, Any] = {"pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Session scoped to one operation: commit on success, roll back on error."""
        db_session = self.SessionLocal()
        try:
            yield db_session
            db_session.commit()
        except Exception as e:
            logger.error(f"Database session error: {e}")
            db_session.rollback()
            raise
        finally:
            db_session.close()

    # ----- categories -----

    def list_categories(self) -> List[Category]:
        with self.session() as s:
            records = s.scalars(select(CategoryRecord).order_by(CategoryRecord.name)).all()
            return [_to_category(r) for r in records]

    def create_category(self, name: str, description: Optional[str] = None) -> Category:
        with self.session() as s:
            record = CategoryRecord(name=name, description=description)
            s.add(record)
            s.flush()
            return _to_category(record)

    def update_category(self, category_id: Any, name: str, description: Optional[str] = None) -> Optional[Category]:
        with self.session() as s:
            record = s.get(CategoryRecord, _as_id(category_id)) if _as_id(category_id) else None
            if record is None:
                return None
            record.name = name
            record.description = description
            s.flush()
            return _to_category(record)

    def delete_category(self, category_id: Any) -> bool:
        with self.session() as s:
            record = s.get(CategoryRecord, _as_id(category_id)) if _as_id(category_id) else None
            if record is None:
                return False
            s.delete(record)
            return True

    # ----- templates -----

    def list_templates(self, category_id: Any = None) -> List[Template]:
        """List templates, newest first, optionally restricted to one category."""
        with self.session() as s:
            query = select(TemplateRecord).order_by(TemplateRecord.created_at.desc(), TemplateRecord.id.desc())
            if category_id not in (None, ""):
                query = query.where(TemplateRecord.category_id == _as_id(category_id))
            return [_to_template(r) for r in s.scalars(query).all()]

    def get_template(self, template_id: Any) -> Template:
        """
        Get one template with its parsed field list.

        Raises:
            TemplateNotFound: for unknown or non-numeric ids
        """
        key = _as_id(template_id)
        with self.session() as s:
            record = s.get(TemplateRecord, key) if key is not None else None
            if record is None:
                raise TemplateNotFound(f"Template not found: {template_id}")
            return _to_template(record)

    def create_template(
        self,
        name: str,
        category_id: Any,
        image_path: str,
        fields: Iterable[Any],
    ) -> Template:
        with self.session() as s:
            record = TemplateRecord(
                name=name,
                category_id=_as_id(category_id),
                image_path=image_path,
                fields=serialize_fields(fields),
            )
            s.add(record)
            s.flush()
            s.refresh(record)
            return _to_template(record)

    def update_template(
        self,
        template_id: Any,
        name: Optional[str] = None,
        category_id: Any = None,
        fields: Optional[Iterable[Any]] = None,
        image_path: Optional[str] = None,
    ) -> Tuple[Template, Optional[str]]:
        """
        Update a template. The image path is only replaced when one is given.

        Returns:
            (updated template, superseded image path or None)

        Raises:
            TemplateNotFound: for unknown ids
        """
        key = _as_id(template_id)
        with self.session() as s:
            record = s.get(TemplateRecord, key) if key is not None else None
            if record is None:
                raise TemplateNotFound(f"Template not found: {template_id}")
            if name is not None:
                record.name = name
            if category_id not in (None, ""):
                record.category_id = _as_id(category_id)
            if fields is not None:
                record.fields = serialize_fields(fields)
            old_image_path = None
            if image_path and image_path != record.image_path:
                old_image_path = record.image_path
                record.image_path = image_path
            s.flush()
            s.refresh(record)
            return _to_template(record), old_image_path

    def delete_template(self, template_id: Any) -> Template:
        """
        Delete a template and return it, so the caller can remove its image.

        Raises:
            TemplateNotFound: for unknown ids
        """
        key = _as_id(template_id)
        with self.session() as s:
            record = s.get(TemplateRecord, key) if key is not None else None
            if record is None:
                raise TemplateNotFound(f"Template not found: {template_id}")
            template = _to_template(record)
            for download in s.scalars(select(DownloadRecord).where(DownloadRecord.template_id == key)):
                s.delete(download)
            s.delete(record)
            return template

    # ----- downloads -----

    def create_download(
        self,
        template_id: Any,
        user_name: str,
        user_mobile: str,
        generated_path: Optional[str] = None,
    ) -> Download:
        key = _as_id(template_id)
        with self.session() as s:
            if key is None or s.get(TemplateRecord, key) is None:
                raise TemplateNotFound(f"Template not found: {template_id}")
            record = DownloadRecord(
                template_id=key,
                user_name=user_name,
                user_mobile=user_mobile,
                generated_path=generated_path,
            )
            s.add(record)
            s.flush()
            s.refresh(record)
            return _to_download(record)

    def list_downloads(self) -> List[Download]:
        with self.session() as s:
            query = select(DownloadRecord).order_by(DownloadRecord.created_at.desc(), DownloadRecord.id.desc())
            return [_to_download(r) for r in s.scalars(query).all()]

    # ----- admins -----

    def get_admin_password_hash(self, username: str) -> Optional[Tuple[int, str]]:
        """Return (admin id, password hash) for a username, or None."""
        with self.session() as s:
            record = s.scalars(select(AdminUserRecord).where(AdminUserRecord.username == username)).first()
            if record is None:
                return None
            return record.id, record.password_hash

    def create_admin(self, username: str, password_hash: str) -> int:
        with self.session() as s:
            record = AdminUserRecord(username=username, password_hash=password_hash)
            s.add(record)
            s.flush()
            return record.id
