"""Customer model."""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_recon.database import Base
from erp_recon.models.base import ZERO, Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from erp_recon.models.invoice import Invoice
    from erp_recon.models.payment import Payment


class Customer(Base, UUIDMixin, TimestampMixin):
    """Customer billed by invoices and paying through bank transfers.

    ``total_paid`` and ``current_balance`` are denormalized aggregates. They are
    incremented during posting without a row lock and can always be rebuilt
    from confirmed payments and open invoices.
    """

    __tablename__ = "customers"

    customer_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    current_balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_paid: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    invoices: Mapped[list["Invoice"]] = relationship("Invoice", back_populates="customer")
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="customer")

    def __repr__(self) -> str:
        return f"<Customer {self.customer_code} {self.name}>"
