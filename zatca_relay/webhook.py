from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from schemas.zatca_schema import WebhookPayload, WebhookResponse
from zatca_relay.config import Settings
from zatca_relay.errors import InternalError, RelayError, SignatureError
from zatca_relay.logger import log_invoice_event
from zatca_relay.metrics import MetricsCollector
from zatca_relay.store import (
    INVOICES_TABLE,
    SYNC_LOGS_TABLE,
    SYNC_TRACKING_TABLE,
    RecordStore,
    StoreError,
)

SIGNATURE_HEADER = "x-zatca-signature"

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
FAILED = "failed"

SYNC_STATUS_BY_REMOTE_STATUS: dict[str, str] = {
    "approved": COMPLETED,
    "cleared": COMPLETED,
    "rejected": FAILED,
    "failed": FAILED,
    "processing": IN_PROGRESS,
}

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check an HMAC-SHA-256 hex signature over the exact request bytes.

    Without a configured secret every request is accepted.
    """
    if not secret:
        logger.warning("ZATCA_WEBHOOK_SECRET not configured; skipping webhook signature verification")
        return True
    if not signature:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8"))


def map_sync_status(status: str) -> str:
    return SYNC_STATUS_BY_REMOTE_STATUS.get(status.strip().lower(), PENDING)


@dataclass(frozen=True)
class WriteOutcome:
    table: str
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class ReconcileReport:
    uuid: str
    sync_status: str
    invoice_update: WriteOutcome
    tracking_update: WriteOutcome
    audit_insert: WriteOutcome

    @property
    def fully_persisted(self) -> bool:
        return self.invoice_update.ok and self.tracking_update.ok and self.audit_insert.ok


def build_zatca_response(payload: WebhookPayload, sync_status: str) -> dict[str, Any]:
    response: dict[str, Any] = {
        "uuid": payload.uuid,
        "status": payload.status,
        "timestamp": payload.timestamp,
        "compliance_status": payload.compliance_status,
        "reporting_status": payload.reporting_status,
        "clearance_status": payload.clearance_status,
    }
    if sync_status == COMPLETED and payload.qr_code:
        response["qr_code"] = payload.qr_code
    if sync_status == FAILED and payload.error_message:
        response["error_message"] = payload.error_message
    return response


class WebhookReconciler:
    """Persist one ZATCA status callback.

    The invoice row and the tracking row are updated independently and a
    failure of one never prevents the other. Exactly one audit row is
    appended per call. Store failures are logged and reported, never raised.
    """

    def __init__(self, store: RecordStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    def _write(self, table: str, uuid: str, action: Callable[[], None]) -> WriteOutcome:
        try:
            action()
        except StoreError as exc:
            log_invoice_event(
                logger,
                logging.ERROR,
                f"Error writing {table}: {exc}",
                zatca_uuid=uuid,
                table=table,
                outcome="persist_failed",
            )
            return WriteOutcome(table=table, ok=False, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Unexpected error writing %s",
                table,
                extra={"zatca_uuid": uuid, "table": table, "outcome": "persist_failed"},
            )
            return WriteOutcome(table=table, ok=False, error=str(exc))
        return WriteOutcome(table=table, ok=True)

    def reconcile(self, payload: WebhookPayload) -> ReconcileReport:
        sync_status = map_sync_status(payload.status)
        zatca_response = build_zatca_response(payload, sync_status)
        now = _now_iso()

        invoice_values = {
            "sync_status": sync_status,
            "zatca_uuid": payload.uuid,
            "zatca_qr_code": payload.qr_code,
            "zatca_response": zatca_response,
            "updated_at": now,
        }
        tracking_values = {
            **invoice_values,
            "sync_timestamp": now,
            "error_message": payload.error_message,
        }

        invoice_update = self._write(
            INVOICES_TABLE,
            payload.uuid,
            lambda: self._store.update(INVOICES_TABLE, "zatca_uuid", payload.uuid, invoice_values),
        )
        tracking_update = self._write(
            SYNC_TRACKING_TABLE,
            payload.uuid,
            lambda: self._store.update(SYNC_TRACKING_TABLE, "zatca_uuid", payload.uuid, tracking_values),
        )
        audit_entry = {
            "action": "zatca_webhook",
            "status": payload.status,
            "details": json.dumps(payload.model_dump(exclude_none=True), ensure_ascii=True),
            "timestamp": now,
            "invoice_id": payload.uuid,
            "request_id": f"webhook_{int(self._clock() * 1000)}",
        }
        audit_insert = self._write(
            SYNC_LOGS_TABLE,
            payload.uuid,
            lambda: self._store.insert(SYNC_LOGS_TABLE, audit_entry),
        )

        log_invoice_event(
            logger,
            logging.INFO,
            f"Updated invoice {payload.uuid} with status: {sync_status}",
            zatca_uuid=payload.uuid,
            state=sync_status,
            outcome="persisted" if invoice_update.ok and tracking_update.ok else "partial",
        )
        return ReconcileReport(
            uuid=payload.uuid,
            sync_status=sync_status,
            invoice_update=invoice_update,
            tracking_update=tracking_update,
            audit_insert=audit_insert,
        )


def _parse_payload(raw_body: bytes) -> WebhookPayload:
    try:
        data = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RelayError("Invalid webhook payload", code="invalid_payload") from exc
    if not isinstance(data, dict):
        raise RelayError("Invalid webhook payload", code="invalid_payload")
    try:
        return WebhookPayload.model_validate(data)
    except ValidationError as exc:
        raise RelayError("Invalid webhook payload", code="invalid_payload") from exc


def process_webhook(
    raw_body: bytes,
    signature: str | None,
    settings: Settings,
    *,
    reconciler: WebhookReconciler,
    metrics: MetricsCollector,
) -> tuple[int, dict[str, Any]]:
    """Authenticate and persist one callback, returning ``(status_code, body)``.

    Once the payload is authentic and well formed the answer is 200 whatever
    happened in the store.
    """
    metrics.increment("webhooks_total")
    try:
        if not verify_signature(raw_body, signature, settings.webhook_secret):
            raise SignatureError()
        payload = _parse_payload(raw_body)
        report = reconciler.reconcile(payload)
    except RelayError as exc:
        metrics.increment("webhooks_rejected_total")
        logger.error("Webhook processing error: %s", exc, extra={"outcome": exc.code})
        return exc.status_code, WebhookResponse(success=False, error=str(exc), timestamp=_now_iso()).to_body()
    except Exception as exc:  # noqa: BLE001
        metrics.increment("webhooks_rejected_total")
        logger.exception("Unexpected webhook processing error")
        wrapped = InternalError(str(exc))
        return wrapped.status_code, WebhookResponse(
            success=False, error=str(wrapped), timestamp=_now_iso()
        ).to_body()

    if not report.fully_persisted:
        metrics.increment("webhook_persist_failures_total")
    return 200, WebhookResponse(
        success=True,
        message="Webhook processed successfully",
        timestamp=_now_iso(),
    ).to_body()
