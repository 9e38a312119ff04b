from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base


class BankTransaction(Base):
    """
    One line of the bank feed. amount is signed: positive = money in (credit),
    negative = money out (debit).
    """

    __tablename__ = "bank_transactions"
    __table_args__ = (
        Index("idx_bank_transactions_date", "date"),
        Index("idx_bank_transactions_tenant_id", "tenant_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    type: Mapped[str | None] = mapped_column(String(16), nullable=True)  # credit | debit
    property_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tenant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    matched_tenant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    match_amount: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    match_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat() if self.date else None,
            "description": self.description,
            "amount": float(self.amount) if self.amount is not None else 0.0,
            "type": self.type,
            "property_id": self.property_id,
            "tenant_id": self.tenant_id,
            "reference": self.reference,
            "category_id": self.category_id,
            "matched_tenant_id": self.matched_tenant_id,
            "match_amount": float(self.match_amount) if self.match_amount is not None else None,
            "match_note": self.match_note,
        }
