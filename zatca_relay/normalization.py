from __future__ import annotations

from typing import Any

from schemas.invoice_schema import InvoiceRecord


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] not in (None, ""):
            return data[key]
    return default


def _safe_float(value: Any, default: float | None = 0.0) -> float | None:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _safe_int(value: Any) -> int | None:
    number = _safe_float(value, default=None)
    if number is None or number != int(number):
        return None
    return int(number)


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_tax_rate(value: Any, default: float) -> float:
    rate = _safe_float(value, default=None)
    if rate is None or rate < 0:
        return default
    # The app stores percentages ("15"); the builder works with fractions.
    if rate > 1:
        rate = rate / 100
    return min(rate, 1.0)


def _normalize_line_items(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    items: list[dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        quantity = _safe_float(_pick(item, "quantity", "qty"), 1.0)
        price = _safe_float(_pick(item, "price", "unit_price", "rate"), 0.0)
        items.append(
            {
                "name": str(_pick(item, "name", "title", "description", default="item")).strip(),
                "description": str(_pick(item, "description", "details", default="")).strip(),
                "quantity": max(quantity, 0.0),
                "price": max(price, 0.0),
            }
        )
    return items


def _normalize_company(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    company: dict[str, Any] = {
        "name": _optional_text(_pick(raw, "ownerName1", "owner_name", "company_name", "name")),
        "vat_no": _optional_text(_pick(raw, "vatNo", "vat_no", "tax_id", "vat_number")),
    }
    for target, keys in {
        "street": ("street", "streetName", "address"),
        "city": ("city", "cityName"),
        "postal_zone": ("postal_zone", "postalCode", "postal_code", "zip"),
        "country_code": ("country_code", "countryCode", "country"),
    }.items():
        value = _optional_text(_pick(raw, *keys))
        if value is not None:
            company[target] = value
    return company


def coerce_invoice_payload(
    raw: dict[str, Any],
    *,
    default_tax_rate: float = 0.15,
    default_currency: str = "SAR",
) -> dict[str, Any]:
    """Resolve the app's alternate field names into the ``InvoiceRecord`` shape."""

    currency = str(_pick(raw, "currency", default=default_currency)).strip().upper()
    if len(currency) != 3:
        currency = default_currency

    return {
        "number": _safe_int(_pick(raw, "no", "number", "invoice_number", "id")),
        "date": _optional_text(_pick(raw, "date", "invoice_date", "issue_date")),
        "customer": str(_pick(raw, "customer", "customer_name", "buyer", default="")),
        "salesman": _optional_text(_pick(raw, "salesman", "sales_person")),
        "vat_no": _optional_text(_pick(raw, "vatNo", "vat_no", "customer_vat", "tax_id")),
        "items": _normalize_line_items(_pick(raw, "items", "line_items", "products", default=[])),
        "total": _safe_float(_pick(raw, "total", "total_amount", "grand_total"), default=None),
        "vat_amount": _safe_float(_pick(raw, "vatAmount", "vat_amount", "tax_amount", "vat"), default=None),
        "discount": max(_safe_float(_pick(raw, "discount", "discount_amount"), 0.0), 0.0),
        "tax_rate": _normalize_tax_rate(_pick(raw, "tax_rate", "taxRate", "vat_rate"), default_tax_rate),
        "currency": currency,
        "company": _normalize_company(_pick(raw, "company", "seller")),
    }


def normalize_invoice(
    raw: dict[str, Any],
    *,
    default_tax_rate: float = 0.15,
    default_currency: str = "SAR",
) -> InvoiceRecord:
    payload = coerce_invoice_payload(
        raw,
        default_tax_rate=default_tax_rate,
        default_currency=default_currency,
    )
    return InvoiceRecord.model_validate(payload)
