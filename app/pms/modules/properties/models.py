from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    property_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # e.g. "P-01"
    building: Mapped[str | None] = mapped_column(String(255), nullable=True)
    units: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "building": self.building,
            "units": self.units,
            "name": self.name or self.building,
        }


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (Index("idx_units_property_id", "property_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Soft reference to properties.property_id; units are imported before their property at times.
    property_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    unit: Mapped[str] = mapped_column(String(64), nullable=False)
    floor: Mapped[str | None] = mapped_column(String(32), nullable=True)
    type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    beds: Mapped[str | None] = mapped_column(String(32), nullable=True)
    rent: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)  # vacant | occupied | ...

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "unit": self.unit,
            "floor": self.floor,
            "type": self.type,
            "beds": self.beds,
            "rent": float(self.rent) if self.rent is not None else None,
            "status": self.status,
        }
