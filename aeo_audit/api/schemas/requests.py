"""Pydantic request schemas for API endpoints."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class StartAuditRequest(BaseModel):
    """Request schema for starting a site audit."""

    url: str = Field(..., min_length=1, description="Root URL of the site to audit (scheme optional)")
    owner_id: str = Field(..., min_length=1, max_length=255, description="Owner of the site")
    max_pages: Optional[int] = Field(
        None,
        ge=1,
        le=500,
        description="Maximum pages to crawl (defaults to the server setting)",
    )

    @field_validator("url", "owner_id")
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com",
                "owner_id": "user-123",
                "max_pages": 50,
            }
        }
