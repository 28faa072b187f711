from __future__ import annotations

import hashlib

from schemas.invoice_schema import InvoiceRecord


def compute_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _format_number(value: float | None) -> str:
    if value is None:
        return ""
    return f"{value:.2f}"


def generate_invoice_hash(record: InvoiceRecord) -> str:
    """Fingerprint the identity fields of an invoice as 64 hex characters."""
    material = "".join(
        [
            str(record.number if record.number is not None else ""),
            record.date or "",
            record.customer,
            record.vat_no or "",
            _format_number(record.total),
            _format_number(record.vat_amount),
        ]
    )
    return compute_digest(material.encode("utf-8"))
