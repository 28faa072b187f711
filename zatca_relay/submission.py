from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from schemas.zatca_schema import SubmissionResponse
from zatca_relay.config import Settings
from zatca_relay.document_builder import build_invoice_document
from zatca_relay.errors import InternalError, InvoiceValidationError, RelayError, UpstreamError
from zatca_relay.hashing import generate_invoice_hash
from zatca_relay.logger import log_invoice_event
from zatca_relay.metrics import MetricsCollector
from zatca_relay.normalization import normalize_invoice
from zatca_relay.pipeline import SubmissionPipeline
from zatca_relay.validation import validate_invoice

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _submit(
    body: dict[str, Any],
    settings: Settings,
    pipeline: SubmissionPipeline,
    metrics: MetricsCollector,
) -> SubmissionResponse:
    raw_invoice = body.get("invoice")
    request_id = body.get("request_id")
    if not raw_invoice or not isinstance(raw_invoice, dict):
        raise InvoiceValidationError("Invoice data is required")

    try:
        record = normalize_invoice(
            raw_invoice,
            default_tax_rate=settings.tax_rate,
            default_currency=settings.currency,
        )
    except ValidationError as exc:
        raise InvoiceValidationError(f"Invoice validation failed: {exc}") from exc

    validation = validate_invoice(record, require_vat_number=settings.require_vat_number)
    if not validation.is_valid:
        metrics.increment("submissions_invalid_total")
        raise InvoiceValidationError(
            f"Invoice validation failed: {', '.join(validation.errors)}",
            errors=validation.errors,
        )

    invoice_hash = generate_invoice_hash(record)
    document = build_invoice_document(record, invoice_hash)
    log_invoice_event(
        logger,
        logging.INFO,
        "Invoice document built",
        request_id=request_id,
        invoice_number=record.number,
        zatca_uuid=document.uuid,
        state="BUILT",
    )

    result = pipeline.run(document, request_id=request_id)
    if not result.success:
        metrics.increment("submissions_rejected_total")
        raise UpstreamError(result.error or "ZATCA submission failed", stage=result.failed_stage or "unknown")

    if result.bypassed:
        metrics.increment("submissions_bypassed_total")
    metrics.increment("submissions_cleared_total")
    return SubmissionResponse(
        success=True,
        uuid=result.uuid,
        qr_code=result.qr_code,
        timestamp=_now_iso(),
        request_id=request_id,
        **result.stage_statuses,
    )


def process_submission(
    body: Any,
    settings: Settings,
    *,
    pipeline: SubmissionPipeline,
    metrics: MetricsCollector,
) -> tuple[int, dict[str, Any]]:
    """Run one submission request and return ``(status_code, response_body)``."""
    metrics.increment("submissions_total")
    started = time.monotonic()
    try:
        if not isinstance(body, dict):
            raise InvoiceValidationError("Invoice data is required")
        response = _submit(body, settings, pipeline, metrics)
        return 200, response.to_body()
    except RelayError as exc:
        logger.error("ZATCA processing error: %s", exc, extra={"outcome": exc.code})
        return exc.status_code, SubmissionResponse(success=False, error=str(exc), timestamp=_now_iso()).to_body()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected ZATCA processing error")
        wrapped = InternalError(str(exc))
        return wrapped.status_code, SubmissionResponse(
            success=False, error=str(wrapped), timestamp=_now_iso()
        ).to_body()
    finally:
        metrics.observe_latency(int((time.monotonic() - started) * 1000))
