"""
Database abstraction for Postgres and an in-memory test implementation.

Four collections are kept: users, banners, gallery images and key/value
settings. Banner writes are partial-field so the discount scheduler and the
admin endpoints never clobber each other's fields.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    Column,
    Float,
    Integer,
    LargeBinary,
    String,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

DEFAULT_BANNER_HEADING = "Welcome"
DEFAULT_BANNER_DESCRIPTION = "Check back soon for our latest offers."

BANNER_FIELDS = ("discount_percentage", "date", "heading", "description", "image")


class PersistenceError(Exception):
    """Base class for failures talking to the database."""


class PersistenceReadError(PersistenceError):
    pass


class PersistenceWriteError(PersistenceError):
    pass


class UserExistsError(Exception):
    """Raised when creating a user whose username is already taken."""


def iso_timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


class DbClient(Protocol):
    """Interface for database access."""

    def get_latest_banner(self) -> Optional["BannerRecord"]:
        ...

    def save_banner(
        self, banner: "BannerRecord", *, fields: Optional[Iterable[str]] = None
    ) -> "BannerRecord":
        ...

    def get_or_create_latest_banner(
        self, default_factory: Callable[[], "BannerRecord"]
    ) -> tuple["BannerRecord", bool]:
        ...

    def get_user_by_username(self, username: str) -> Optional["UserRecord"]:
        ...

    def create_user(self, username: str, password_hash: str) -> "UserRecord":
        ...

    def get_settings_map(self) -> dict[str, str]:
        ...

    def set_setting(self, key: str, value: str) -> None:
        ...

    def list_images(self) -> list["ImageRecord"]:
        ...

    def get_image(self, image_id: str) -> Optional["ImageRecord"]:
        ...

    def create_image(self, image: "ImageRecord") -> "ImageRecord":
        ...

    def update_image_date(
        self, image_id: str, image_date: str
    ) -> Optional["ImageRecord"]:
        ...

    def replace_image(
        self, image_id: str, image: "ImageRecord"
    ) -> Optional["ImageRecord"]:
        ...

    def delete_image(self, image_id: str) -> bool:
        ...


@dataclass
class BannerImage:
    data: bytes
    content_type: str
    filename: str


@dataclass
class BannerRecord:
    discount_percentage: int
    date: str
    heading: str
    description: str
    image: Optional[BannerImage] = None
    banner_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    @classmethod
    def default(cls, today: date) -> "BannerRecord":
        """Placeholder banner used when the collection is still empty."""
        return cls(
            discount_percentage=0,
            date=today.isoformat(),
            heading=DEFAULT_BANNER_HEADING,
            description=DEFAULT_BANNER_DESCRIPTION,
        )

    def as_dict(self, image_url: Optional[str] = None) -> dict:
        return {
            "id": self.banner_id,
            "discountPercentage": self.discount_percentage,
            "date": self.date,
            "heading": self.heading,
            "description": self.description,
            "imageUrl": image_url if self.image else None,
            "createdAt": iso_timestamp(self.created_at),
            "updatedAt": iso_timestamp(self.updated_at),
        }


@dataclass
class UserRecord:
    user_id: str
    username: str
    password_hash: str
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())


@dataclass
class ImageRecord:
    image_id: str
    image_url: str
    asset_id: str
    date: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.image_id,
            "imageUrl": self.image_url,
            "assetId": self.asset_id,
            "date": self.date,
            "createdAt": iso_timestamp(self.created_at),
        }


def _check_banner_fields(fields: Optional[Iterable[str]]) -> tuple[str, ...]:
    if fields is None:
        return BANNER_FIELDS
    names = tuple(fields)
    unknown = set(names) - set(BANNER_FIELDS)
    if unknown:
        raise ValueError(f"Unknown banner fields: {sorted(unknown)}")
    return names


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.banners: Dict[str, BannerRecord] = {}
        self.users: Dict[str, UserRecord] = {}
        self.settings: Dict[str, str] = {}
        self.images: Dict[str, ImageRecord] = {}
        self._banner_lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.banners.clear()
        self.users.clear()
        self.settings.clear()
        self.images.clear()

    def get_latest_banner(self) -> Optional[BannerRecord]:
        latest: Optional[BannerRecord] = None
        # Later inserts win ties on created_at.
        for banner in self.banners.values():
            if latest is None or banner.created_at >= latest.created_at:
                latest = banner
        return replace(latest) if latest else None

    def save_banner(
        self, banner: BannerRecord, *, fields: Optional[Iterable[str]] = None
    ) -> BannerRecord:
        names = _check_banner_fields(fields)
        now = time.time()
        stored = self.banners.get(banner.banner_id) if banner.banner_id else None
        if stored is None:
            stored = replace(
                banner,
                banner_id=banner.banner_id or uuid.uuid4().hex,
                created_at=now,
                updated_at=now,
            )
            self.banners[stored.banner_id] = stored
            return replace(stored)
        for name in names:
            setattr(stored, name, getattr(banner, name))
        stored.updated_at = now
        return replace(stored)

    def get_or_create_latest_banner(
        self, default_factory: Callable[[], BannerRecord]
    ) -> tuple[BannerRecord, bool]:
        """Return the latest banner, inserting ``default_factory()`` if none exists."""
        with self._banner_lock:
            banner = self.get_latest_banner()
            if banner is not None:
                return banner, False
            return self.save_banner(default_factory()), True

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.username == username:
                return user
        return None

    def create_user(self, username: str, password_hash: str) -> UserRecord:
        if self.get_user_by_username(username):
            raise UserExistsError(username)
        record = UserRecord(
            user_id=uuid.uuid4().hex,
            username=username,
            password_hash=password_hash,
        )
        self.users[record.user_id] = record
        return record

    def get_settings_map(self) -> dict[str, str]:
        return dict(self.settings)

    def set_setting(self, key: str, value: str) -> None:
        self.settings[key] = value

    def list_images(self) -> list[ImageRecord]:
        return list(self.images.values())

    def get_image(self, image_id: str) -> Optional[ImageRecord]:
        return self.images.get(image_id)

    def create_image(self, image: ImageRecord) -> ImageRecord:
        self.images[image.image_id] = image
        return image

    def update_image_date(
        self, image_id: str, image_date: str
    ) -> Optional[ImageRecord]:
        image = self.images.get(image_id)
        if image:
            image.date = image_date
        return image

    def replace_image(
        self, image_id: str, image: ImageRecord
    ) -> Optional[ImageRecord]:
        old = self.images.pop(image_id, None)
        if old is None:
            return None
        image.created_at = old.created_at
        self.images[image.image_id] = image
        return image

    def delete_image(self, image_id: str) -> bool:
        return self.images.pop(image_id, None) is not None


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)
        self._banner_lock = threading.Lock()

    def _to_banner_record(self, row: "BannerRow") -> BannerRecord:
        image = None
        if row.image_data is not None:
            image = BannerImage(
                data=row.image_data,
                content_type=row.image_content_type or "application/octet-stream",
                filename=row.image_filename or "",
            )
        return BannerRecord(
            banner_id=row.id,
            discount_percentage=row.discount_percentage,
            date=row.date,
            heading=row.heading,
            description=row.description,
            image=image,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_image_record(self, row: "ImageRow") -> ImageRecord:
        return ImageRecord(
            image_id=row.id,
            image_url=row.image_url,
            asset_id=row.asset_id,
            date=row.date,
            created_at=row.created_at,
        )

    def get_latest_banner(self) -> Optional[BannerRecord]:
        with self.Session() as session:
            stmt = select(BannerRow).order_by(BannerRow.created_at.desc()).limit(1)
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return self._to_banner_record(row)

    def save_banner(
        self, banner: BannerRecord, *, fields: Optional[Iterable[str]] = None
    ) -> BannerRecord:
        names = _check_banner_fields(fields)
        now = time.time()
        with self.Session() as session:
            row = session.get(BannerRow, banner.banner_id) if banner.banner_id else None
            if row is None:
                row = BannerRow(
                    id=banner.banner_id or uuid.uuid4().hex,
                    created_at=now,
                )
                names = BANNER_FIELDS
                session.add(row)
            for name in names:
                if name == "image":
                    image = banner.image
                    row.image_data = image.data if image else None
                    row.image_content_type = image.content_type if image else None
                    row.image_filename = image.filename if image else None
                else:
                    setattr(row, name, getattr(banner, name))
            row.updated_at = now
            session.commit()
            session.refresh(row)
            return self._to_banner_record(row)

    def get_or_create_latest_banner(
        self, default_factory: Callable[[], BannerRecord]
    ) -> tuple[BannerRecord, bool]:
        # The lock serializes creation within this process only.
        with self._banner_lock:
            banner = self.get_latest_banner()
            if banner is not None:
                return banner, False
            return self.save_banner(default_factory()), True

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.username == username)
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return UserRecord(
                user_id=row.id,
                username=row.username,
                password_hash=row.password_hash,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )

    def create_user(self, username: str, password_hash: str) -> UserRecord:
        now = time.time()
        record = UserRecord(
            user_id=uuid.uuid4().hex,
            username=username,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        with self.Session() as session:
            session.add(
                UserRow(
                    id=record.user_id,
                    username=record.username,
                    password_hash=record.password_hash,
                    created_at=now,
                    updated_at=now,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise UserExistsError(username) from exc
        return record

    def get_settings_map(self) -> dict[str, str]:
        with self.Session() as session:
            rows = session.execute(select(SettingRow)).scalars().all()
            return {row.key: row.value for row in rows}

    def set_setting(self, key: str, value: str) -> None:
        with self.Session() as session:
            row = session.get(SettingRow, key)
            if row:
                row.value = value
                row.updated_at = time.time()
            else:
                session.add(SettingRow(key=key, value=value, updated_at=time.time()))
            session.commit()

    def list_images(self) -> list[ImageRecord]:
        with self.Session() as session:
            rows = session.execute(select(ImageRow)).scalars().all()
            return [self._to_image_record(row) for row in rows]

    def get_image(self, image_id: str) -> Optional[ImageRecord]:
        with self.Session() as session:
            row = session.get(ImageRow, image_id)
            return self._to_image_record(row) if row else None

    def create_image(self, image: ImageRecord) -> ImageRecord:
        with self.Session() as session:
            session.add(
                ImageRow(
                    id=image.image_id,
                    image_url=image.image_url,
                    asset_id=image.asset_id,
                    date=image.date,
                    created_at=image.created_at,
                )
            )
            session.commit()
        return image

    def update_image_date(
        self, image_id: str, image_date: str
    ) -> Optional[ImageRecord]:
        with self.Session() as session:
            row = session.get(ImageRow, image_id)
            if not row:
                return None
            row.date = image_date
            session.commit()
            return self._to_image_record(row)

    def replace_image(
        self, image_id: str, image: ImageRecord
    ) -> Optional[ImageRecord]:
        with self.Session() as session:
            old = session.get(ImageRow, image_id)
            if not old:
                return None
            image.created_at = old.created_at
            session.delete(old)
            session.flush()
            session.add(
                ImageRow(
                    id=image.image_id,
                    image_url=image.image_url,
                    asset_id=image.asset_id,
                    date=image.date,
                    created_at=image.created_at,
                )
            )
            session.commit()
        return image

    def delete_image(self, image_id: str) -> bool:
        with self.Session() as session:
            row = session.get(ImageRow, image_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True


Base = declarative_base()


class BannerRow(Base):
    __tablename__ = "banners"

    id = Column(String, primary_key=True)
    discount_percentage = Column(Integer, nullable=False)
    date = Column(String, nullable=False)
    heading = Column(String, nullable=False)
    description = Column(String, nullable=False)
    image_data = Column(LargeBinary, nullable=True)
    image_content_type = Column(String, nullable=True)
    image_filename = Column(String, nullable=True)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column("password", String, nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class SettingRow(Base):
    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
    updated_at = Column(Float, nullable=False)


class ImageRow(Base):
    __tablename__ = "images"

    id = Column(String, primary_key=True)
    image_url = Column(String, nullable=False)
    asset_id = Column(String, nullable=False)
    date = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
