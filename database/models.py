from sqlalchemy import Column, String, Integer, Float, DateTime, JSON, Text, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default="buyer")
    status = Column(String, nullable=False, default="pending")
    suspend_reason = Column(Text, nullable=False, default="")
    suspend_feedback = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        CheckConstraint("moq >= 1", name="ck_products_moq_positive"),
    )

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    moq = Column(Integer, nullable=False, default=1)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),
        Index("ix_orders_user_email", "user_email"),
        Index("ix_orders_status", "status"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=True)
    user_email = Column(String, nullable=False)
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    product_title = Column(String, nullable=False, default="")
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    first_name = Column(String, nullable=False, default="")
    last_name = Column(String, nullable=False, default="")
    contact_number = Column(String, nullable=False, default="")
    delivery_address = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False)
    payment_method = Column(String, nullable=False)
    payment_status = Column(String, nullable=False)
    transaction_id = Column(String, nullable=True)
    ordered_at = Column(DateTime(timezone=True), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class TrackingEntry(Base):
    __tablename__ = "tracking_entries"
    __table_args__ = (Index("ix_tracking_entries_order_id", "order_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False)
    step = Column(String, nullable=False)
    location = Column(String, nullable=False, default="")
    note = Column(Text, nullable=False, default="")
    milestone_status = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)

class Payment(Base):
    __tablename__ = "payments"

    transaction_id = Column(String, primary_key=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False)
    email = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String, nullable=False, default="usd")
    status = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False)
    type = Column(String, nullable=False)
    payload_json = Column(JSON, nullable=True)
    ts = Column(DateTime(timezone=True), server_default=func.now())
