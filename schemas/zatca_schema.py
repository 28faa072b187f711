from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, StringConstraints

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    uuid: RequiredText
    status: RequiredText
    timestamp: str | None = None
    invoice_hash: str | None = None
    qr_code: str | None = None
    error_message: str | None = None
    compliance_status: str | None = None
    reporting_status: str | None = None
    clearance_status: str | None = None


class SubmissionResponse(BaseModel):
    success: bool
    timestamp: str
    uuid: str | None = None
    qr_code: str | None = None
    error: str | None = None
    request_id: str | None = None
    compliance_status: str | None = None
    reporting_status: str | None = None
    clearance_status: str | None = None

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class WebhookResponse(BaseModel):
    success: bool
    timestamp: str
    message: str | None = None
    error: str | None = None

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
