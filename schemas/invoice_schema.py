from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LineItem(BaseModel):
    name: str = ""
    description: str = ""
    quantity: float = Field(default=1.0, ge=0)
    price: float = Field(default=0.0, ge=0)

    @property
    def line_amount(self) -> float:
        return self.quantity * self.price


class CompanyInfo(BaseModel):
    name: str | None = None
    vat_no: str | None = None
    street: str = "Street Address"
    city: str = "City"
    postal_zone: str = "00000"
    country_code: str = "SA"


class InvoiceRecord(BaseModel):
    """Typed invoice as submitted by the mobile client.

    ``total`` and ``vat_amount`` are optional on input. When absent they are
    derived from the line items: ``vat_amount = subtotal * tax_rate`` and
    ``total = subtotal - discount + vat_amount``.
    """

    model_config = ConfigDict(extra="ignore")

    number: int | None = None
    date: str | None = None
    customer: str = ""
    salesman: str | None = None
    vat_no: str | None = None
    items: list[LineItem] = Field(default_factory=list)
    total: float | None = None
    vat_amount: float | None = None
    discount: float = Field(default=0.0, ge=0)
    tax_rate: float = Field(default=0.15, ge=0, le=1)
    currency: str = Field(default="SAR", min_length=3, max_length=3)
    company: CompanyInfo | None = None

    @property
    def subtotal(self) -> float:
        return sum(item.line_amount for item in self.items)

    @model_validator(mode="after")
    def _derive_totals(self) -> "InvoiceRecord":
        if not self.items:
            return self
        if self.vat_amount is None:
            self.vat_amount = round(self.subtotal * self.tax_rate, 2)
        if self.total is None:
            self.total = round(self.subtotal - self.discount + self.vat_amount, 2)
        return self
