"""
schemas/settings.py — Pydantic models for system settings and Shopify import

Called by: routers/settings.py, routers/shopify.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class HeadphoneModelsUpdate(BaseModel):
    models: list[str] = Field(default_factory=list)


class ShopifyConfigUpdate(BaseModel, extra="allow"):
    store_domain: str | None = None
    api_access_token: str | None = None
    api_version: str | None = None
    sync_enabled: bool = False
    sync_interval_minutes: int = Field(default=15, ge=1, le=1440)


class ShopifyImportRequest(BaseModel):
    order_id: int
    line_item_ids: list[int] = Field(default_factory=list)


class BugReportCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    severity: str = Field(default="medium", pattern=r"^(low|medium|high|critical)$")
    steps_to_reproduce: str | None = None
    screenshot: str | None = None
    current_url: str | None = None
    browser_info: str | None = None
    console_errors: str | None = None


class BugReportUpdate(BaseModel):
    status: str | None = Field(default=None, pattern=r"^(open|in_progress|resolved|closed)$")
    admin_notes: str | None = None
