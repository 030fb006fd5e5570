from __future__ import annotations

from pydantic import BaseModel, Field


class RegisterIn(BaseModel):
    email: str
    password: str = Field(min_length=6)
    full_name: str = ""


class LoginIn(BaseModel):
    email: str
    password: str


class RejectIn(BaseModel):
    reason: str = ""


class ReportIn(BaseModel):
    reason: str = ""
    reporter_email: str | None = None


class ReportUpdateIn(BaseModel):
    admin_notes: str | None = None


class BlockIn(BaseModel):
    email: str | None = None
    phone: str | None = None
    reason: str | None = None


class ServiceIn(BaseModel):
    title: str
    description: str | None = None
    price: int = 0
    image_url: str | None = None
    is_active: bool = True
    display_order: int = 0


class ServiceUpdateIn(BaseModel):
    title: str | None = None
    description: str | None = None
    price: int | None = None
    image_url: str | None = None
    is_active: bool | None = None
    display_order: int | None = None


class ServiceRequestIn(BaseModel):
    name: str
    email: str
    phone: str
    address: str | None = None
    message: str | None = None


class ServiceRequestUpdateIn(BaseModel):
    status: str
    admin_notes: str | None = None


class SponsorSettingsIn(BaseModel):
    qr_code_url: str | None = None
    upi_id: str | None = None
    bank_name: str | None = None
    account_holder_name: str | None = None
    account_number: str | None = None
    ifsc_code: str | None = None
    message: str | None = None
