import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a unique string ID"""
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    ENGINEER = "ENGINEER"


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    OTP_SENT = "OTP_SENT"
    VERIFIED = "VERIFIED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class VisitStatus(str, enum.Enum):
    PENDING = "PENDING"
    OTP_VERIFIED = "OTP_VERIFIED"
    COMPLETED = "COMPLETED"


class TransactionType(str, enum.Enum):
    STOCK_IN = "STOCK_IN"
    STOCK_OUT = "STOCK_OUT"


class User(Base):
    """Dashboard account. Credentials live in the external auth service."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.ENGINEER.value)
    # Engineer accounts are linked to their directory entry
    engineer_id = Column(String(36), ForeignKey("engineers.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    engineer = relationship("Engineer")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class ClientType(Base):
    """Admin-maintained category for clients (e.g. builder, retail, office)"""

    __tablename__ = "client_types"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), unique=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False, index=True)
    primary_contact = Column(String(20), nullable=False)
    secondary_contact = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    client_type_id = Column(String(36), ForeignKey("client_types.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    client_type = relationship("ClientType")


class Engineer(Base):
    __tablename__ = "engineers"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False)
    mobile_number = Column(String(20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)


class Material(Base):
    __tablename__ = "materials"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False, index=True)
    unit = Column(String(50), nullable=False, default="pcs")
    reorder_level = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)


class Appointment(Base):
    """Engineer site visit gated by a client OTP.

    Status workflow: SCHEDULED → OTP_SENT → VERIFIED → COMPLETED
    CANCELLED is an administrative terminal state reachable before completion.
    """

    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=generate_id)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    engineer_id = Column(String(36), ForeignKey("engineers.id"), nullable=False, index=True)

    visit_date = Column(DateTime, nullable=False, index=True)
    purpose = Column(Text, nullable=True)
    site_address = Column(Text, nullable=True)
    google_maps_link = Column(Text, nullable=True)
    otp_mobile_number = Column(String(20), nullable=True)  # Overrides client's primary contact

    status = Column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value, index=True)

    # OTP fields are all null or all set together
    otp = Column(String(10), nullable=True)
    otp_sent_at = Column(DateTime, nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)
    otp_attempts = Column(Integer, nullable=False, default=0)
    verified_at = Column(DateTime, nullable=True)

    feedback = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Optimistic concurrency: every UPDATE is guarded by the version read
    version_id = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client")
    engineer = relationship("Engineer")

    __mapper_args__ = {"version_id_col": version_id}


class WorkerVisit(Base):
    """Site visit capturing the on-site contractor worker count.

    Status workflow: PENDING → (OTP_VERIFIED) → COMPLETED
    worker_count is set if and only if status is COMPLETED.
    """

    __tablename__ = "worker_visits"

    id = Column(String(36), primary_key=True, default=generate_id)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    engineer_id = Column(String(36), ForeignKey("engineers.id"), nullable=False, index=True)

    visit_date = Column(DateTime, nullable=False, index=True)
    site_address = Column(Text, nullable=True)

    otp = Column(String(10), nullable=True)
    otp_sent_at = Column(DateTime, nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=VisitStatus.PENDING.value, index=True)
    verified_at = Column(DateTime, nullable=True)

    worker_count = Column(Integer, nullable=True)
    remarks = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    version_id = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client")
    engineer = relationship("Engineer")

    __mapper_args__ = {"version_id_col": version_id}


class InventoryTransaction(Base):
    """Append-only stock ledger entry. Never updated or deleted."""

    __tablename__ = "inventory_transactions"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_transactions_quantity_positive"),
        Index("ix_inventory_transactions_material_date", "material_id", "transaction_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    material_id = Column(String(36), ForeignKey("materials.id"), nullable=False)
    transaction_type = Column(String(20), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)

    # STOCK_OUT provenance
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True)
    site_address = Column(Text, nullable=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), nullable=True)

    remarks = Column(Text, nullable=True)
    transaction_date = Column(DateTime, nullable=False, index=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    material = relationship("Material")
    client = relationship("Client")
    appointment = relationship("Appointment")
    created_by_user = relationship("User")
