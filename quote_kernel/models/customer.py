"""
Module: quote_kernel.models.customer
Responsibility: Backing table for the customer directory.  Quotations and
    invoices keep their own snapshot of these fields.
"""

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from quote_kernel.db.base import TrackedBase


class CustomerModel(TrackedBase):
    __tablename__ = "customers"

    customer_ref: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    trn: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Customer {self.customer_ref} {self.name}>"
