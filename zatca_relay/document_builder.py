from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable
from uuid import UUID, uuid4

from lxml import etree

from schemas.invoice_schema import CompanyInfo, InvoiceRecord

UBL_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
NSMAP = {None: UBL_NS, "cac": CAC_NS, "cbc": CBC_NS}

CUSTOMIZATION_ID = "urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0"
PROFILE_ID = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
INVOICE_TYPE_CODE = "110"
PLACEHOLDER_VAT_NO = "000000000000000"
PLACEHOLDER_SELLER_NAME = "Company Name"

_CENT = Decimal("0.01")
_DATE_TIME_SEPARATOR = re.compile(r"\s+[–—-]\s+")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")
_TIME_FORMATS = ("%H:%M:%S", "%H:%M", "%I:%M %p", "%I:%M:%S %p", "%I:%M%p")


@dataclass(frozen=True)
class CanonicalDocument:
    uuid: str
    invoice_hash: str
    invoice_number: int
    xml: str
    issue_date: str
    issue_time: str
    currency: str
    seller_name: str
    seller_vat_no: str
    line_extension_amount: Decimal
    allowance_total_amount: Decimal
    tax_exclusive_amount: Decimal
    tax_amount: Decimal
    tax_inclusive_amount: Decimal
    payable_amount: Decimal

    @property
    def timestamp(self) -> str:
        return f"{self.issue_date}T{self.issue_time}"


def money(value: float | Decimal) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _percent(rate: float) -> str:
    return format((Decimal(str(rate)) * 100).normalize(), "f")


def _parse_date(text: str) -> datetime | None:
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _parse_time(text: str) -> tuple[int, int, int] | None:
    for fmt in _TIME_FORMATS:
        try:
            parsed = datetime.strptime(text.upper(), fmt)
        except ValueError:
            continue
        return parsed.hour, parsed.minute, parsed.second
    return None


def parse_invoice_datetime(value: str | None, *, now: datetime | None = None) -> datetime:
    """Parse the date shapes the mobile app produces.

    Accepts ISO-8601 (``2024-05-01T10:20:30``, ``2024-05-01 10:20``,
    ``2024-05-01``) and the app's "date – time" display format
    (``01/05/2024 – 10:20 AM``). Unparseable input falls back to ``now``.
    """
    fallback = now or datetime.now(timezone.utc)
    if not value or not value.strip():
        return fallback
    text = value.strip()

    parts = _DATE_TIME_SEPARATOR.split(text, maxsplit=1)
    if len(parts) == 2:
        day = _parse_date(parts[0].strip())
        clock = _parse_time(parts[1].strip())
        if day is not None and clock is not None:
            return day.replace(hour=clock[0], minute=clock[1], second=clock[2])
        return fallback

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        parsed = _parse_date(text)
        if parsed is None:
            return fallback
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _sub(parent: etree._Element, ns: str, name: str, text: Any = None, **attrib: str) -> etree._Element:
    element = etree.SubElement(parent, f"{{{ns}}}{name}", **attrib)
    if text is not None:
        element.text = str(text)
    return element


def _amount(parent: etree._Element, name: str, value: Decimal, currency: str) -> etree._Element:
    return _sub(parent, CBC_NS, name, f"{value:.2f}", currencyID=currency)


def _tax_category(parent: etree._Element, percent: str) -> None:
    category = _sub(parent, CAC_NS, "TaxCategory")
    _sub(category, CBC_NS, "ID", "S")
    _sub(category, CBC_NS, "Percent", percent)
    scheme = _sub(category, CAC_NS, "TaxScheme")
    _sub(scheme, CBC_NS, "ID", "VAT")


def _tax_total(
    parent: etree._Element,
    taxable: Decimal,
    tax: Decimal,
    percent: str,
    currency: str,
) -> None:
    tax_total = _sub(parent, CAC_NS, "TaxTotal")
    _amount(tax_total, "TaxAmount", tax, currency)
    subtotal = _sub(tax_total, CAC_NS, "TaxSubtotal")
    _amount(subtotal, "TaxableAmount", taxable, currency)
    _amount(subtotal, "TaxAmount", tax, currency)
    _sub(subtotal, CBC_NS, "Percent", percent)
    _tax_category(subtotal, percent)


def _party(
    parent: etree._Element,
    role: str,
    *,
    vat_no: str,
    name: str,
    street: str,
    city: str,
    postal_zone: str,
    country_code: str,
    with_tax_scheme: bool,
) -> None:
    wrapper = _sub(parent, CAC_NS, role)
    party = _sub(wrapper, CAC_NS, "Party")
    identification = _sub(party, CAC_NS, "PartyIdentification")
    _sub(identification, CBC_NS, "ID", vat_no, schemeID="VAT")
    party_name = _sub(party, CAC_NS, "PartyName")
    _sub(party_name, CBC_NS, "Name", name)
    address = _sub(party, CAC_NS, "PostalAddress")
    _sub(address, CBC_NS, "StreetName", street)
    _sub(address, CBC_NS, "CityName", city)
    _sub(address, CBC_NS, "PostalZone", postal_zone)
    country = _sub(address, CAC_NS, "Country")
    _sub(country, CBC_NS, "IdentificationCode", country_code)
    if with_tax_scheme:
        tax_scheme = _sub(party, CAC_NS, "PartyTaxScheme")
        scheme = _sub(tax_scheme, CAC_NS, "TaxScheme")
        _sub(scheme, CBC_NS, "ID", "VAT")


def build_invoice_document(
    record: InvoiceRecord,
    invoice_hash: str,
    *,
    now: datetime | None = None,
    uuid_factory: Callable[[], UUID] = uuid4,
) -> CanonicalDocument:
    """Render a validated invoice as a UBL 2.1 document.

    Every call stamps a fresh UUID, so two builds of the same invoice differ
    in their identifier while all monetary fields stay equal.
    """
    company = record.company or CompanyInfo()
    currency = record.currency
    percent = _percent(record.tax_rate)
    document_uuid = str(uuid_factory())
    issued_at = parse_invoice_datetime(record.date, now=now)
    issue_date = issued_at.strftime("%Y-%m-%d")
    issue_time = issued_at.strftime("%H:%M:%S")

    vat_amount = money(record.vat_amount or 0.0)
    total = money(record.total or 0.0)
    line_extension = money(record.subtotal)
    allowance = money(record.discount)
    tax_exclusive = total - vat_amount
    seller_name = company.name or PLACEHOLDER_SELLER_NAME
    seller_vat_no = company.vat_no or PLACEHOLDER_VAT_NO

    root = etree.Element(f"{{{UBL_NS}}}Invoice", nsmap=NSMAP)
    _sub(root, CBC_NS, "UBLVersionID", "2.1")
    _sub(root, CBC_NS, "CustomizationID", CUSTOMIZATION_ID)
    _sub(root, CBC_NS, "ProfileID", PROFILE_ID)
    _sub(root, CBC_NS, "ID", record.number)
    _sub(root, CBC_NS, "CopyIndicator", "false")
    _sub(root, CBC_NS, "UUID", document_uuid)
    _sub(root, CBC_NS, "IssueDate", issue_date)
    _sub(root, CBC_NS, "IssueTime", issue_time)
    _sub(root, CBC_NS, "InvoiceTypeCode", INVOICE_TYPE_CODE)
    _sub(root, CBC_NS, "DocumentCurrencyCode", currency)
    _sub(root, CBC_NS, "LineCountNumeric", len(record.items))

    reference = _sub(root, CAC_NS, "AdditionalDocumentReference")
    _sub(reference, CBC_NS, "ID", "InvoiceHash")
    attachment = _sub(reference, CAC_NS, "Attachment")
    _sub(attachment, CBC_NS, "EmbeddedDocumentBinaryObject", invoice_hash, mimeCode="text/plain")

    _party(
        root,
        "AccountingSupplierParty",
        vat_no=seller_vat_no,
        name=seller_name,
        street=company.street,
        city=company.city,
        postal_zone=company.postal_zone,
        country_code=company.country_code,
        with_tax_scheme=True,
    )
    _party(
        root,
        "AccountingCustomerParty",
        vat_no=record.vat_no or PLACEHOLDER_VAT_NO,
        name=record.customer,
        street="Customer Address",
        city="City",
        postal_zone="00000",
        country_code="SA",
        with_tax_scheme=False,
    )

    payment = _sub(root, CAC_NS, "PaymentMeans")
    _sub(payment, CBC_NS, "ID", "1")
    _sub(payment, CBC_NS, "PaymentMeansCode", "1")

    if allowance > 0:
        charge = _sub(root, CAC_NS, "AllowanceCharge")
        _sub(charge, CBC_NS, "ChargeIndicator", "false")
        _sub(charge, CBC_NS, "AllowanceChargeReason", "discount")
        _amount(charge, "Amount", allowance, currency)

    _tax_total(root, tax_exclusive, vat_amount, percent, currency)

    monetary = _sub(root, CAC_NS, "LegalMonetaryTotal")
    _amount(monetary, "LineExtensionAmount", line_extension, currency)
    _amount(monetary, "TaxExclusiveAmount", tax_exclusive, currency)
    _amount(monetary, "TaxInclusiveAmount", total, currency)
    _amount(monetary, "AllowanceTotalAmount", allowance, currency)
    _amount(monetary, "PayableAmount", total, currency)

    for index, item in enumerate(record.items, start=1):
        line_amount = money(item.line_amount)
        line_tax = money(item.line_amount * record.tax_rate)
        line = _sub(root, CAC_NS, "InvoiceLine")
        _sub(line, CBC_NS, "ID", index)
        _sub(line, CBC_NS, "InvoicedQuantity", f"{item.quantity:g}", unitCode="PCE")
        _amount(line, "LineExtensionAmount", line_amount, currency)
        _tax_total(line, line_amount, line_tax, percent, currency)
        item_el = _sub(line, CAC_NS, "Item")
        _sub(item_el, CBC_NS, "Name", item.name)
        _sub(item_el, CBC_NS, "Description", item.description)
        price = _sub(line, CAC_NS, "Price")
        _amount(price, "PriceAmount", money(item.price), currency)

    xml = etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True).decode("utf-8")
    return CanonicalDocument(
        uuid=document_uuid,
        invoice_hash=invoice_hash,
        invoice_number=record.number or 0,
        xml=xml,
        issue_date=issue_date,
        issue_time=issue_time,
        currency=currency,
        seller_name=seller_name,
        seller_vat_no=seller_vat_no,
        line_extension_amount=line_extension,
        allowance_total_amount=allowance,
        tax_exclusive_amount=tax_exclusive,
        tax_amount=vat_amount,
        tax_inclusive_amount=total,
        payable_amount=total,
    )
