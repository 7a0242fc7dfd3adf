"""Read-only mappings of the ERP directories Buildline looks actors and locations up in.

Both tables are owned and provisioned by the ERP; Buildline never writes to them
outside of seed scripts and tests.
"""
import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column

from buildline.database import Base
from buildline.db_types import UUIDType


class BuildlineRole(str, Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    TECHNICIAN = "technician"
    QC_PERSON = "qc_person"
    WAREHOUSE_STAFF = "warehouse_staff"


class LocationType(str, Enum):
    WAREHOUSE = "warehouse"
    STORE = "store"


class Location(Base):
    """Warehouse or store where bikes are assembled."""
    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), unique=True, nullable=True)
    type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, comment="warehouse, store")
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Location(code='{self.code}', name='{self.name}')>"


class User(Base):
    """ERP user as seen by Buildline: identity, display name and buildline role."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    buildline_role: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        comment="admin, supervisor, technician, qc_person, warehouse_staff"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<User(name='{self.name}', role='{self.buildline_role}')>"
