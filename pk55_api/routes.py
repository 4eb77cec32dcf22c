"""
HTTP routes for the PK55 API.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile

from pk55_api.config import Settings, get_settings
from pk55_api.db import (
    BannerImage,
    BannerRecord,
    DbClient,
    ImageRecord,
    UserExistsError,
)
from pk55_api.dependencies import get_db_client, get_media_client
from pk55_api.scheduler import default_banner
from pk55_api.schemas import (
    AuthResponse,
    BannerResponse,
    BannerUpdateRequest,
    BannerUploadResponse,
    CredentialsPayload,
    HealthResponse,
    ImageDateUpdateRequest,
    ImageMutationResponse,
    ImageResponse,
    MessageResponse,
    SettingsUpdateRequest,
    UserSummary,
)
from pk55_api.security import (
    check_password,
    create_access_token,
    hash_password,
    require_auth,
)
from pk55_api.storage import MediaStorageClient, UploadedAsset

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_SETTINGS = {
    "headerText": "DAILY PK 55 REPORT AND ALL KHABAR",
    "subheaderText": "Stay Updated with the Latest News",
}


def _auth_response(user_id: str, username: str, settings: Settings) -> AuthResponse:
    return AuthResponse(
        token=create_access_token(user_id, settings),
        user=UserSummary(id=user_id, username=username),
    )


def _require_credentials(payload: CredentialsPayload) -> tuple[str, str]:
    username = (payload.username or "").strip()
    if not username or not payload.password:
        raise HTTPException(status_code=400, detail="Username and password required")
    return username, payload.password


@router.post("/auth/login", response_model=AuthResponse)
def login(
    payload: CredentialsPayload,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    username, password = _require_credentials(payload)
    user = db.get_user_by_username(username)
    if not user or not check_password(password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _auth_response(user.user_id, user.username, settings)


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    payload: CredentialsPayload,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    username, password = _require_credentials(payload)
    if db.get_user_by_username(username):
        raise HTTPException(status_code=400, detail="Username already exists")
    try:
        user = db.create_user(
            username, hash_password(password, settings.password_salt_rounds)
        )
    except UserExistsError:
        raise HTTPException(status_code=400, detail="Username already exists")
    logger.info("Registered user %s", user.username)
    return _auth_response(user.user_id, user.username, settings)


# --- Banner ---


def _get_or_create_banner(db: DbClient) -> BannerRecord:
    banner, created = db.get_or_create_latest_banner(
        lambda: default_banner(datetime.now(timezone.utc))
    )
    if created:
        logger.info("Created default banner %s", banner.banner_id)
    return banner


def _require_text(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise HTTPException(status_code=400, detail=f"{label} cannot be empty")
    return value


def _banner_response(banner: BannerRecord, settings: Settings) -> BannerResponse:
    image_url = f"{settings.api_prefix}/banner/image"
    return BannerResponse(**banner.as_dict(image_url=image_url))


async def _read_image_upload(file: UploadFile | None, max_bytes: int) -> bytes:
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files allowed")
    data = await file.read(max_bytes + 1)
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail="File too large")
    return data


@router.get("/banner", response_model=BannerResponse)
def get_banner(
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    return _banner_response(_get_or_create_banner(db), settings)


@router.put("/banner", response_model=BannerResponse)
def update_banner(
    payload: BannerUpdateRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
    _user_id: str = Depends(require_auth),
):
    banner = _get_or_create_banner(db)
    changed: list[str] = []
    if payload.discountPercentage is not None:
        banner.discount_percentage = payload.discountPercentage
        changed.append("discount_percentage")
    if payload.date is not None:
        banner.date = payload.date
        changed.append("date")
    if payload.heading is not None:
        banner.heading = _require_text(payload.heading, "Heading")
        changed.append("heading")
    if payload.description is not None:
        banner.description = _require_text(payload.description, "Description")
        changed.append("description")
    if changed:
        banner = db.save_banner(banner, fields=changed)
    return _banner_response(banner, settings)


@router.post("/banner/upload", response_model=BannerUploadResponse)
async def upload_banner_image(
    image: UploadFile | None = File(None),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
    _user_id: str = Depends(require_auth),
):
    data = await _read_image_upload(image, settings.max_upload_bytes)
    banner = _get_or_create_banner(db)
    banner.image = BannerImage(
        data=data,
        content_type=image.content_type,
        filename=image.filename,
    )
    db.save_banner(banner, fields=["image"])
    return BannerUploadResponse(
        imageUrl=f"{settings.api_prefix}/banner/image",
        message="Image uploaded successfully",
    )


@router.get("/banner/image")
def get_banner_image(db: DbClient = Depends(get_db_client)):
    banner = db.get_latest_banner()
    if not banner or not banner.image:
        raise HTTPException(status_code=404, detail="Banner image not found")
    return Response(content=banner.image.data, media_type=banner.image.content_type)


# --- Settings ---


@router.get("/settings", response_model=dict[str, str])
def get_site_settings(db: DbClient = Depends(get_db_client)):
    values = db.get_settings_map()
    for key, default in DEFAULT_SETTINGS.items():
        if not values.get(key):
            values[key] = default
    return values


@router.put("/settings", response_model=MessageResponse)
def update_site_settings(
    payload: SettingsUpdateRequest,
    db: DbClient = Depends(get_db_client),
    _user_id: str = Depends(require_auth),
):
    if payload.headerText:
        db.set_setting("headerText", payload.headerText)
    if payload.subheaderText:
        db.set_setting("subheaderText", payload.subheaderText)
    return MessageResponse(message="Settings updated successfully")


# --- Image gallery ---


def _gallery_sort_key(image: ImageRecord) -> tuple[datetime, float]:
    value = image.date.strip()
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        parsed = datetime.min
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed, image.created_at


def _upload_to_media_host(
    media: MediaStorageClient, data: bytes, upload: UploadFile
) -> UploadedAsset:
    try:
        return media.upload_image(data, upload.content_type, upload.filename)
    except Exception as exc:
        logger.exception("Upload to media host failed")
        raise HTTPException(
            status_code=502, detail=f"Failed to upload image: {exc}"
        )


@router.get("/images", response_model=list[ImageResponse])
def list_gallery_images(db: DbClient = Depends(get_db_client)):
    images = sorted(db.list_images(), key=_gallery_sort_key, reverse=True)
    return [ImageResponse(**image.as_dict()) for image in images]


@router.post("/images/upload", response_model=ImageMutationResponse)
async def upload_gallery_image(
    image: UploadFile | None = File(None),
    date: str | None = Form(None),
    db: DbClient = Depends(get_db_client),
    media: MediaStorageClient = Depends(get_media_client),
    settings: Settings = Depends(get_settings),
    _user_id: str = Depends(require_auth),
):
    data = await _read_image_upload(image, settings.max_upload_bytes)
    if not date:
        raise HTTPException(status_code=400, detail="Date is required")

    asset = _upload_to_media_host(media, data, image)
    record = db.create_image(
        ImageRecord(
            image_id=asset.public_id,
            image_url=asset.url,
            asset_id=asset.public_id,
            date=date,
        )
    )
    logger.info("Uploaded gallery image %s", record.image_id)
    return ImageMutationResponse(
        message="Image uploaded successfully", image=ImageResponse(**record.as_dict())
    )


@router.put("/images/{image_id:path}/update-date", response_model=ImageMutationResponse)
def update_gallery_image_date(
    image_id: str,
    payload: ImageDateUpdateRequest,
    db: DbClient = Depends(get_db_client),
    _user_id: str = Depends(require_auth),
):
    if not payload.date:
        raise HTTPException(status_code=400, detail="Date is required")
    record = db.update_image_date(image_id, payload.date)
    if not record:
        raise HTTPException(status_code=404, detail="Image not found")
    return ImageMutationResponse(
        message="Image date updated successfully",
        image=ImageResponse(**record.as_dict()),
    )


@router.put("/images/{image_id:path}/replace", response_model=ImageMutationResponse)
async def replace_gallery_image(
    image_id: str,
    image: UploadFile | None = File(None),
    date: str | None = Form(None),
    db: DbClient = Depends(get_db_client),
    media: MediaStorageClient = Depends(get_media_client),
    settings: Settings = Depends(get_settings),
    _user_id: str = Depends(require_auth),
):
    data = await _read_image_upload(image, settings.max_upload_bytes)
    existing = db.get_image(image_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Image not found")

    asset = _upload_to_media_host(media, data, image)
    try:
        media.delete_image(existing.asset_id)
    except Exception:
        # Old asset is left orphaned on the host.
        logger.exception("Failed to delete replaced asset %s", existing.asset_id)

    record = db.replace_image(
        image_id,
        ImageRecord(
            image_id=asset.public_id,
            image_url=asset.url,
            asset_id=asset.public_id,
            date=date or existing.date,
        ),
    )
    if not record:
        raise HTTPException(status_code=404, detail="Image not found")
    return ImageMutationResponse(
        message="Image replaced successfully", image=ImageResponse(**record.as_dict())
    )


@router.delete("/images/{image_id:path}", response_model=MessageResponse)
def delete_gallery_image(
    image_id: str,
    db: DbClient = Depends(get_db_client),
    media: MediaStorageClient = Depends(get_media_client),
    _user_id: str = Depends(require_auth),
):
    existing = db.get_image(image_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Image not found")
    try:
        media.delete_image(existing.asset_id)
    except Exception as exc:
        logger.exception("Failed to delete asset %s", existing.asset_id)
        raise HTTPException(
            status_code=502, detail=f"Failed to delete image: {exc}"
        )
    db.delete_image(image_id)
    return MessageResponse(message="Image deleted successfully")


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(
        status="ok", timestamp=datetime.now(timezone.utc).isoformat()
    )
