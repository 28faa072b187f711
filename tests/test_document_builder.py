from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

import pytest
from lxml import etree

from zatca_relay.document_builder import (
    CAC_NS,
    CBC_NS,
    PLACEHOLDER_SELLER_NAME,
    PLACEHOLDER_VAT_NO,
    build_invoice_document,
    parse_invoice_datetime,
)
from zatca_relay.normalization import normalize_invoice

NS = {"cac": CAC_NS, "cbc": CBC_NS}
_NOW = datetime(2026, 3, 1, 8, 30, 0)


def _invoice(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "no": 7,
        "date": "2026-02-27T10:15:30",
        "customer": "Al Noor Trading",
        "vatNo": "310122393500003",
        "items": [
            {"name": "Paper", "description": "A4", "quantity": 3, "price": 12.5},
            {"name": "Pens", "quantity": 5, "price": 2.5},
        ],
        "discount": 5,
        "company": {"ownerName1": "Acme Supplies", "vatNo": "300000000000003"},
    }
    payload.update(overrides)
    return payload


def _text(root: etree._Element, path: str) -> str:
    found = root.find(path, NS)
    assert found is not None, path
    return found.text or ""


def test_total_invariant_matches_line_items_tax_and_discount() -> None:
    record = normalize_invoice(_invoice())
    document = build_invoice_document(record, "hash")

    lines = 3 * 12.5 + 5 * 2.5
    expected_total = round(lines * 1.15 - 5, 2)
    assert float(document.payable_amount) == pytest.approx(expected_total, abs=0.01)
    assert document.line_extension_amount == Decimal("50.00")
    assert document.tax_amount == Decimal("7.50")
    assert document.allowance_total_amount == Decimal("5.00")
    assert document.tax_exclusive_amount == document.tax_inclusive_amount - document.tax_amount


def test_build_is_not_idempotent_but_money_is_stable() -> None:
    record = normalize_invoice(_invoice())
    first = build_invoice_document(record, "hash")
    second = build_invoice_document(record, "hash")

    assert first.uuid != second.uuid
    assert first.payable_amount == second.payable_amount
    assert first.tax_amount == second.tax_amount
    assert first.line_extension_amount == second.line_extension_amount


def test_document_contains_header_parties_and_lines() -> None:
    record = normalize_invoice(_invoice())
    fixed = UUID("12345678-1234-4234-8234-123456789abc")
    document = build_invoice_document(record, "abc123", uuid_factory=lambda: fixed)
    root = etree.fromstring(document.xml.encode("utf-8"))

    assert _text(root, "cbc:UBLVersionID") == "2.1"
    assert _text(root, "cbc:ID") == "7"
    assert _text(root, "cbc:UUID") == str(fixed)
    assert _text(root, "cbc:IssueDate") == "2026-02-27"
    assert _text(root, "cbc:IssueTime") == "10:15:30"
    assert _text(root, "cbc:InvoiceTypeCode") == "110"
    assert _text(root, "cbc:DocumentCurrencyCode") == "SAR"
    assert _text(root, "cbc:LineCountNumeric") == "2"
    assert _text(root, "cac:AdditionalDocumentReference/cac:Attachment/cbc:EmbeddedDocumentBinaryObject") == "abc123"
    assert (
        _text(root, "cac:AccountingSupplierParty/cac:Party/cac:PartyName/cbc:Name") == "Acme Supplies"
    )
    assert (
        _text(root, "cac:AccountingCustomerParty/cac:Party/cac:PartyIdentification/cbc:ID")
        == "310122393500003"
    )
    assert _text(root, "cac:TaxTotal/cac:TaxSubtotal/cbc:Percent") == "15"
    assert _text(root, "cac:LegalMonetaryTotal/cbc:PayableAmount") == "52.50"

    lines = root.findall("cac:InvoiceLine", NS)
    assert len(lines) == 2
    assert _text(lines[0], "cbc:LineExtensionAmount") == "37.50"
    assert _text(lines[0], "cac:TaxTotal/cbc:TaxAmount") == "5.63"
    assert _text(lines[0], "cac:Price/cbc:PriceAmount") == "12.50"
    assert lines[0].find("cbc:LineExtensionAmount", NS).get("currencyID") == "SAR"


def test_missing_seller_details_use_placeholders() -> None:
    record = normalize_invoice(_invoice(company={}))
    document = build_invoice_document(record, "hash")
    assert document.seller_name == PLACEHOLDER_SELLER_NAME
    assert document.seller_vat_no == PLACEHOLDER_VAT_NO


def test_text_is_escaped() -> None:
    record = normalize_invoice(_invoice(customer="Tom & Jerry <Ltd>"))
    document = build_invoice_document(record, "hash")
    root = etree.fromstring(document.xml.encode("utf-8"))
    assert (
        _text(root, "cac:AccountingCustomerParty/cac:Party/cac:PartyName/cbc:Name")
        == "Tom & Jerry <Ltd>"
    )


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2026-02-27T10:15:30", datetime(2026, 2, 27, 10, 15, 30)),
        ("2026-02-27T10:15:30Z", datetime(2026, 2, 27, 10, 15, 30)),
        ("2026-02-27T13:15:30+03:00", datetime(2026, 2, 27, 10, 15, 30)),
        ("2026-02-27 10:15", datetime(2026, 2, 27, 10, 15)),
        ("2026-02-27", datetime(2026, 2, 27)),
        ("27/02/2026 – 10:15 AM", datetime(2026, 2, 27, 10, 15)),
        ("2026-02-27 - 4:05 pm", datetime(2026, 2, 27, 16, 5)),
    ],
)
def test_parse_invoice_datetime_shapes(value: str, expected: datetime) -> None:
    assert parse_invoice_datetime(value, now=_NOW) == expected


@pytest.mark.parametrize("value", [None, "", "yesterday", "27/02/2026 – later"])
def test_parse_invoice_datetime_falls_back_to_now(value: str | None) -> None:
    assert parse_invoice_datetime(value, now=_NOW) == _NOW


def test_unparseable_date_uses_current_time() -> None:
    record = normalize_invoice(_invoice(date="not a date"))
    before = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    document = build_invoice_document(record, "hash")
    after = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    assert document.issue_date in {before, after}
