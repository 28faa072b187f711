from __future__ import annotations

from dataclasses import dataclass, field

from schemas.invoice_schema import InvoiceRecord


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_invoice(record: InvoiceRecord, *, require_vat_number: bool = True) -> ValidationResult:
    """Check the fields ZATCA needs before a document can be built.

    ``require_vat_number`` is on for standard (B2B) invoices. Simplified
    invoices to consumers may omit the buyer's VAT registration number.
    """
    errors: list[str] = []

    if record.number is None or record.number <= 0:
        errors.append("Invalid invoice number")

    if not record.date or not record.date.strip():
        errors.append("Invoice date is required")

    if not record.customer or not record.customer.strip():
        errors.append("Customer name is required")

    if require_vat_number and (not record.vat_no or not record.vat_no.strip()):
        errors.append("VAT number is required")

    if not record.items:
        errors.append("Invoice must have at least one item")

    if record.total is None or record.total <= 0:
        errors.append("Invalid total amount")

    if record.vat_amount is None or record.vat_amount < 0:
        errors.append("Invalid VAT amount")

    if record.company is None:
        errors.append("Company details are required")

    return ValidationResult(is_valid=not errors, errors=errors)
