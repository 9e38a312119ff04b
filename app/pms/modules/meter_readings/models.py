from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base


def description_for(meter_type: str | None) -> str:
    return "Water Billing" if meter_type == "water" else "Electricity Billing"


class MeterReading(Base):
    __tablename__ = "meter_readings"
    __table_args__ = (Index("idx_meter_readings_unit_type", "unit", "meter_type"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    unit: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    meter_type: Mapped[str] = mapped_column(String(32), nullable=False)  # water | electricity
    reading_date: Mapped[date] = mapped_column(Date, nullable=False)
    reading_value: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False)
    prev_value: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    usage: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    # Billing happens elsewhere; readings are recorded at 0.
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    proof_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "unit": self.unit,
            "tenant_id": self.tenant_id,
            "meter_type": self.meter_type,
            "reading_date": self.reading_date.isoformat() if self.reading_date else None,
            "reading_value": float(self.reading_value or 0),
            "prev_value": float(self.prev_value or 0),
            "usage": float(self.usage or 0),
            "amount": float(self.amount or 0),
            "proof_url": self.proof_url,
            "description": description_for(self.meter_type),
        }
