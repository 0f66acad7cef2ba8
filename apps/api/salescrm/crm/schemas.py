from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1)
    industry: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    status: str = "private"
    market_region: str | None = None


class CustomerUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    industry: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    status: str | None = None


class CustomerRead(BaseModel):
    id: str
    name: str
    industry: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str
    owner_id: str | None = None
    market_region: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AutoScoreRequest(BaseModel):
    customer_ids: list[str] | None = None


class AutoScoreResponse(BaseModel):
    queued: int
    score_request_ids: list[str]


class CustomerSummaryRead(BaseModel):
    total: int
    by_status: dict[str, int]
