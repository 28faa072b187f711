from __future__ import annotations

import base64
import logging

SELLER_NAME_TAG = 1
VAT_NUMBER_TAG = 2
TIMESTAMP_TAG = 3
TOTAL_TAG = 4
VAT_AMOUNT_TAG = 5
MAX_FIELD_BYTES = 255

logger = logging.getLogger(__name__)


def _tlv(tag: int, value: str) -> bytes:
    encoded = value.encode("utf-8")
    if len(encoded) > MAX_FIELD_BYTES:
        # The length is a single byte; cut on a character boundary.
        encoded = encoded[:MAX_FIELD_BYTES].decode("utf-8", errors="ignore").encode("utf-8")
        logger.warning("QR field %s truncated to %s bytes", tag, len(encoded))
    return bytes([tag, len(encoded)]) + encoded


def build_qr_payload(
    seller_name: str,
    vat_number: str,
    timestamp: str,
    total: float,
    vat_amount: float,
) -> str:
    """Return the base64 TLV payload ZATCA expects in simplified invoice QR codes."""
    data = b"".join(
        [
            _tlv(SELLER_NAME_TAG, seller_name),
            _tlv(VAT_NUMBER_TAG, vat_number),
            _tlv(TIMESTAMP_TAG, timestamp),
            _tlv(TOTAL_TAG, f"{total:.2f}"),
            _tlv(VAT_AMOUNT_TAG, f"{vat_amount:.2f}"),
        ]
    )
    return base64.b64encode(data).decode("ascii")


def decode_qr_payload(payload: str) -> dict[int, str]:
    data = base64.b64decode(payload)
    fields: dict[int, str] = {}
    idx = 0
    while idx < len(data):
        if idx + 2 > len(data):
            raise ValueError("Truncated QR payload")
        tag, length = data[idx], data[idx + 1]
        start = idx + 2
        end = start + length
        if end > len(data):
            raise ValueError("Truncated QR payload")
        fields[tag] = data[start:end].decode("utf-8")
        idx = end
    return fields
