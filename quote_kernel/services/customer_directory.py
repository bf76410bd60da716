"""CustomerDirectory -- supplies the customer fields snapshotted into documents."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from quote_kernel.exceptions import CustomerNotFoundError
from quote_kernel.models.customer import CustomerModel


@dataclass(frozen=True)
class CustomerSnapshot:
    customer_ref: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    trn: str | None = None


class CustomerDirectory(Protocol):
    def lookup(self, customer_ref: str) -> CustomerSnapshot:
        ...


class SqlCustomerDirectory:
    """Directory backed by the ``customers`` table; inactive customers are unknown."""

    def __init__(self, session: Session):
        self.session = session

    def lookup(self, customer_ref: str) -> CustomerSnapshot:
        customer = self.session.execute(
            select(CustomerModel).where(CustomerModel.customer_ref == customer_ref)
        ).scalar_one_or_none()
        if customer is None or not customer.is_active:
            raise CustomerNotFoundError(customer_ref)
        return CustomerSnapshot(
            customer_ref=customer.customer_ref,
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            address=customer.address,
            trn=customer.trn,
        )
