"""
Pydantic schemas for the PK55 API.

Field names follow the camelCase JSON the web client already consumes.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class CredentialsPayload(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UserSummary(BaseModel):
    id: str
    username: str


class AuthResponse(BaseModel):
    token: str
    user: UserSummary


class BannerResponse(BaseModel):
    id: Optional[str] = None
    discountPercentage: int
    date: str
    heading: str
    description: str
    imageUrl: Optional[str] = None
    createdAt: str
    updatedAt: str


class BannerUpdateRequest(BaseModel):
    discountPercentage: Optional[int] = Field(default=None, ge=0, le=100)
    date: Optional[str] = None
    heading: Optional[str] = None
    description: Optional[str] = None


class BannerUploadResponse(BaseModel):
    imageUrl: str
    message: str


class SettingsUpdateRequest(BaseModel):
    headerText: Optional[str] = None
    subheaderText: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class ImageResponse(BaseModel):
    id: str
    imageUrl: str
    assetId: str
    date: str
    createdAt: str


class ImageMutationResponse(BaseModel):
    message: str
    image: ImageResponse


class ImageDateUpdateRequest(BaseModel):
    date: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
