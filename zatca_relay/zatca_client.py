from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any

import requests

from zatca_relay.config import Settings
from zatca_relay.document_builder import CanonicalDocument
from zatca_relay.qr import build_qr_payload

COMPLIANCE = "compliance"
REPORTING = "reporting"
CLEARANCE = "clearance"
STAGES: tuple[str, ...] = (COMPLIANCE, REPORTING, CLEARANCE)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageResult:
    stage: str
    success: bool
    uuid: str | None = None
    qr_code: str | None = None
    error: str | None = None
    status_code: int | None = None


def local_qr_payload(document: CanonicalDocument) -> str:
    return build_qr_payload(
        seller_name=document.seller_name,
        vat_number=document.seller_vat_no,
        timestamp=document.timestamp,
        total=float(document.payable_amount),
        vat_amount=float(document.tax_amount),
    )


class ZatcaClient:
    def __init__(self, settings: Settings, session: Any | None = None) -> None:
        self._settings = settings
        self._session = session or requests.Session()

    def endpoint(self, stage: str) -> str:
        if stage not in STAGES:
            raise ValueError(f"Unknown ZATCA stage: {stage}")
        base = self._settings.zatca_base_url.rstrip("/")
        if self._settings.zatca_api_version:
            return f"{base}/{self._settings.zatca_api_version}/{stage}"
        return f"{base}/{stage}"

    def _headers(self) -> dict[str, str]:
        scheme = "Basic" if self._settings.zatca_auth_scheme == "basic" else "Bearer"
        headers = {
            "Accept": "application/json",
            "Authorization": f"{scheme} {self._settings.zatca_api_token or ''}",
        }
        if self._settings.zatca_api_version:
            headers["Accept-Version"] = self._settings.zatca_api_version.upper()
        return headers

    def submit(self, stage: str, document: CanonicalDocument, signed_xml: str) -> StageResult:
        url = self.endpoint(stage)
        headers = self._headers()
        request_kwargs: dict[str, Any] = {"headers": headers, "timeout": self._settings.zatca_request_timeout}
        if self._settings.zatca_payload_format == "json":
            headers["Content-Type"] = "application/json"
            request_kwargs["json"] = {
                "invoiceHash": document.invoice_hash,
                "uuid": document.uuid,
                "invoice": base64.b64encode(signed_xml.encode("utf-8")).decode("ascii"),
            }
        else:
            headers["Content-Type"] = "application/xml"
            request_kwargs["data"] = signed_xml.encode("utf-8")

        try:
            response = self._session.post(url, **request_kwargs)
        except requests.RequestException as exc:
            logger.error("ZATCA %s request failed: %s", stage, exc)
            return StageResult(stage=stage, success=False, error=str(exc))

        if not 200 <= response.status_code < 300:
            return StageResult(
                stage=stage,
                success=False,
                error=response.text or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if stage != CLEARANCE:
            return StageResult(stage=stage, success=True, status_code=response.status_code)

        body = _json_body(response)
        return StageResult(
            stage=stage,
            success=True,
            uuid=str(body.get("uuid") or document.uuid),
            qr_code=str(body.get("qr_code") or local_qr_payload(document)),
            status_code=response.status_code,
        )


def _json_body(response: Any) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload
