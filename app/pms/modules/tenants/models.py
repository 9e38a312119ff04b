from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base


class Tenant(Base):
    __tablename__ = "tenants"
    __table_args__ = (
        Index("idx_tenants_name", "name"),
        Index("idx_tenants_property_id", "property_id"),
    )

    # String ids: imports carry spreadsheet references, commercial orgs carry uuids.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    building: Mapped[str | None] = mapped_column(String(255), nullable=True)
    property_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(255), nullable=True)
    monthly_rent: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    due_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "building": self.building,
            "property_id": self.property_id,
            "unit": self.unit,
            "monthly_rent": float(self.monthly_rent) if self.monthly_rent is not None else None,
            "due_day": self.due_day,
            "reference": self.reference,
            "phone": self.phone,
        }
