from datetime import datetime
from typing import List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    computed_field,
    field_validator,
    model_validator,
)

from linkengine.clock import to_naive_utc
from linkengine.config import settings
from linkengine.services.destination import build_destination_url
from linkengine.services.passwords import MAX_PASSWORD_BYTES

ALIAS_PATTERN = r"^[A-Za-z0-9_-]{3,64}$"

# Paths served by the app itself; an alias with one of these names could
# never be reached.
RESERVED_ALIASES = frozenset({"api", "docs", "redoc", "health"})


def check_alias(value: Optional[str]) -> Optional[str]:
    if value is not None and value.lower() in RESERVED_ALIASES:
        raise ValueError(f"'{value}' is reserved and cannot be used as an alias")
    return value


def check_password(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class UTMParameters(BaseModel):
    """UTM fields appended to the destination at resolution time"""
    source: Optional[str] = Field(None, max_length=255)
    medium: Optional[str] = Field(None, max_length=255)
    campaign: Optional[str] = Field(None, max_length=255)
    term: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = Field(None, max_length=255)


class LinkCreate(BaseModel):
    original_url: HttpUrl = Field(..., description="The destination URL")
    custom_alias: Optional[str] = Field(None, pattern=ALIAS_PATTERN)
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    utm: Optional[UTMParameters] = None

    is_active: bool = True
    start_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    expiry_hours: Optional[int] = Field(None, gt=0, description="Alternative to expires_at")
    password: Optional[str] = Field(None, min_length=1)
    max_clicks: Optional[int] = Field(None, ge=1)
    pixel_script: Optional[str] = None

    @field_validator("custom_alias")
    @classmethod
    def alias_not_reserved(cls, value: Optional[str]) -> Optional[str]:
        return check_alias(value)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return check_password(value)

    @field_validator("start_at", "expires_at")
    @classmethod
    def as_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_schedule(self):
        if self.expires_at is not None and self.expiry_hours is not None:
            raise ValueError("Provide either expires_at or expiry_hours, not both")
        if self.start_at and self.expires_at and self.start_at >= self.expires_at:
            raise ValueError("start_at must be before expires_at")
        return self


class LinkUpdate(BaseModel):
    """Owner edit. Only fields that are explicitly sent are applied.

    An empty `password` removes the lock.
    """
    original_url: Optional[HttpUrl] = None
    custom_alias: Optional[str] = Field(None, pattern=ALIAS_PATTERN)
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    utm: Optional[UTMParameters] = None

    is_active: Optional[bool] = None
    start_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    password: Optional[str] = None
    max_clicks: Optional[int] = Field(None, ge=1)
    pixel_script: Optional[str] = None

    @field_validator("custom_alias")
    @classmethod
    def alias_not_reserved(cls, value: Optional[str]) -> Optional[str]:
        return check_alias(value)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return check_password(value)

    @field_validator("start_at", "expires_at")
    @classmethod
    def as_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_schedule(self):
        if self.start_at and self.expires_at and self.start_at >= self.expires_at:
            raise ValueError("start_at must be before expires_at")
        return self


class LinkSnapshot(BaseModel):
    """
    The gate-relevant view of a link.

    The resolver evaluates gates against this, whether it was loaded from the
    store or from the cache, so both paths go through identical checks.
    """
    id: int
    short_code: str
    custom_alias: Optional[str] = None
    original_url: str
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    is_active: bool = True
    start_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_locked: bool = False
    password_hash: Optional[str] = None
    max_clicks: Optional[int] = None
    click_count: int = 0
    pixel_script: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    def utm_parameters(self) -> dict:
        return {
            "source": self.utm_source,
            "medium": self.utm_medium,
            "campaign": self.utm_campaign,
            "term": self.utm_term,
            "content": self.utm_content,
        }

    def destination_url(self) -> str:
        return build_destination_url(self.original_url, self.utm_parameters())


class LinkResponse(BaseModel):
    """Response schema that serializes the SQLAlchemy Link model"""
    id: int
    short_code: str
    custom_alias: Optional[str] = None
    original_url: str
    owner_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    is_active: bool
    start_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_locked: bool
    max_clicks: Optional[int] = None
    pixel_script: Optional[str] = None
    click_count: int
    unique_click_count: int
    is_suspicious: bool = False
    security_warnings: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def short_url(self) -> str:
        return f"{settings.base_url}/{self.custom_alias or self.short_code}"

    @computed_field
    @property
    def destination_url(self) -> str:
        """Original URL with UTM parameters applied"""
        return build_destination_url(self.original_url, {
            "source": self.utm_source,
            "medium": self.utm_medium,
            "campaign": self.utm_campaign,
            "term": self.utm_term,
            "content": self.utm_content,
        })

    model_config = ConfigDict(from_attributes=True)


class LinkPage(BaseModel):
    items: List[LinkResponse]
    page: int
    page_size: int
    total: int
