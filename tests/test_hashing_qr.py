from __future__ import annotations

import base64
import hashlib
import re

import pytest

from zatca_relay.hashing import compute_digest, generate_invoice_hash
from zatca_relay.normalization import normalize_invoice
from zatca_relay.qr import build_qr_payload, decode_qr_payload


def _record(**overrides: object):
    payload = {
        "no": 12,
        "date": "2026-02-27",
        "customer": "Buyer",
        "vatNo": "310122393500003",
        "items": [{"name": "A", "quantity": 1, "price": 100}],
    }
    payload.update(overrides)
    return normalize_invoice(payload)


def test_compute_digest_is_sha256_hex() -> None:
    assert compute_digest(b"abc") == hashlib.sha256(b"abc").hexdigest()


def test_invoice_hash_is_64_lowercase_hex() -> None:
    digest = generate_invoice_hash(_record())
    assert re.fullmatch(r"[0-9a-f]{64}", digest)


def test_invoice_hash_covers_identity_fields() -> None:
    expected = compute_digest("122026-02-27Buyer310122393500003115.0015.00".encode("utf-8"))
    assert generate_invoice_hash(_record()) == expected


def test_invoice_hash_is_deterministic_and_sensitive() -> None:
    assert generate_invoice_hash(_record()) == generate_invoice_hash(_record())
    assert generate_invoice_hash(_record()) != generate_invoice_hash(_record(customer="Other"))
    assert generate_invoice_hash(_record()) != generate_invoice_hash(_record(vatAmount=16))


def test_qr_payload_decodes_to_fields() -> None:
    payload = build_qr_payload("شركة أكمي", "300000000000003", "2026-02-27T10:15:30", 115, 15)
    assert decode_qr_payload(payload) == {
        1: "شركة أكمي",
        2: "300000000000003",
        3: "2026-02-27T10:15:30",
        4: "115.00",
        5: "15.00",
    }


def test_qr_payload_uses_tag_length_value_layout() -> None:
    raw = base64.b64decode(build_qr_payload("Acme", "3", "t", 1, 0))
    assert raw[:6] == bytes([1, 4]) + b"Acme"
    assert raw[6:9] == bytes([2, 1]) + b"3"


def test_long_qr_field_is_truncated_on_character_boundary() -> None:
    fields = decode_qr_payload(build_qr_payload("ش" * 130, "3", "t", 1, 0))
    assert fields[1] == "ش" * 127
    assert fields[2] == "3"

    assert decode_qr_payload(build_qr_payload("x" * 300, "3", "t", 1, 0))[1] == "x" * 255


def test_truncated_qr_payload_is_rejected() -> None:
    truncated = base64.b64encode(bytes([1, 10]) + b"abc").decode("ascii")
    with pytest.raises(ValueError, match="Truncated"):
        decode_qr_payload(truncated)
