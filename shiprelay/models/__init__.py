"""
SQLAlchemy models for orders, shipments and their tracking history.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum as SQLEnum, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shiprelay.database import Base
import enum
import uuid

# Enums
class CourierSource(str, enum.Enum):
    BLUEDART = "bluedart"
    SHIPROCKET = "shiprocket"

class OpsFlag(str, enum.Enum):
    SLA_BREACH = "SLA_BREACH"
    STUCK_IN_TRANSIT = "STUCK_IN_TRANSIT"
    ESCALATE = "ESCALATE"

class StatusType(str, enum.Enum):
    DELIVERED = "DL"
    RETURN_TO_ORIGIN = "RT"
    OUT_FOR_DELIVERY = "OF"
    UNKNOWN = "UNKNOWN"

# Models
class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True)  # Shopify order id
    order_number = Column("order_number", String, nullable=True)
    financial_status = Column("financial_status", String, nullable=True)
    fulfillment_status = Column("fulfillment_status", String, nullable=True)
    total_price = Column("total_price", Numeric(12, 2), default=0, nullable=False)
    payment_gateway_names = Column("payment_gateway_names", JSON, nullable=True)
    created_at = Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    shipments = relationship(
        "Shipment",
        primaryjoin="Order.id == foreign(Shipment.order_id)",
        viewonly=True,
        order_by="Shipment.created_at",
    )

class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    awb = Column("awb", String, unique=True, nullable=False, index=True)
    # No FK: fulfillments/create can arrive before orders/paid
    order_id = Column("order_id", String, nullable=True, index=True)
    fulfillment_id = Column("fulfillment_id", String, nullable=True)
    courier_source = Column("courier_source", SQLEnum(CourierSource), nullable=False)
    tracking_company = Column("tracking_company", String, nullable=True)
    actual_courier = Column("actual_courier", String, nullable=True)
    last_known_status = Column("last_known_status", String, nullable=True)
    delivered_at = Column("delivered_at", DateTime(timezone=True), nullable=True)
    next_check_at = Column("next_check_at", DateTime(timezone=True), nullable=False, index=True)
    ops_flag = Column("ops_flag", SQLEnum(OpsFlag), nullable=True)
    ndr_reason = Column("ndr_reason", String, nullable=True)
    last_checked_at = Column("last_checked_at", DateTime(timezone=True), nullable=True)
    created_at = Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    scans = relationship(
        "ShipmentScan",
        back_populates="shipment",
        cascade="all, delete-orphan",
        order_by="ShipmentScan.created_at",
    )

class ShipmentScan(Base):
    __tablename__ = "shipment_scans"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    shipment_id = Column("shipment_id", String, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    scan_date = Column("scan_date", String, nullable=False, default="")
    location = Column("location", String, nullable=True)
    description = Column("description", String, nullable=False, default="")
    created_at = Column("created_at", DateTime(timezone=True), server_default=func.now())

    shipment = relationship("Shipment", back_populates="scans")

    __table_args__ = (
        UniqueConstraint("shipment_id", "scan_date", "description", name="shipment_scans_unique"),
    )


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    source = Column("source", String, nullable=False, index=True)
    topic = Column("topic", String, nullable=False, index=True)
    payload_summary = Column("payload_summary", String, nullable=True)
    processed_at = Column("processed_at", DateTime(timezone=True), nullable=True)
    error = Column("error", String, nullable=True)
    created_at = Column("created_at", DateTime(timezone=True), server_default=func.now())
