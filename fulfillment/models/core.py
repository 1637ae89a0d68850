from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, ForeignKey, DateTime, Enum, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from fulfillment.database import Base
from fulfillment.models.enums import StoreType, OrderStatus, AssignmentType, AssignmentStatus, TrackingStatus

class Store(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    type = Column(Enum(StoreType), nullable=False)
    store_url = Column(String(500), nullable=False)
    api_credentials = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)
    sync_enabled = Column(Boolean, default=True, nullable=False)
    last_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    orders = relationship("Order", back_populates="store")
    synced_products = relationship("SyncedProduct", back_populates="store", cascade="all, delete-orphan")

class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    company_name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=True)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    assignments = relationship("VendorAssignment", back_populates="vendor")

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    external_order_id = Column(String(255), nullable=False)
    order_number = Column(String(100), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    billing_address = Column(JSON, nullable=True)
    shipping_address = Column(JSON, nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), default="USD")
    order_status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    fulfillment_status = Column(String(50), nullable=True)
    payment_status = Column(String(50), nullable=True)
    tags = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    order_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    store = relationship("Store", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    assignments = relationship("VendorAssignment", back_populates="order")
    status_history = relationship("OrderStatusHistory", back_populates="order", order_by="OrderStatusHistory.id")

    __table_args__ = (
        UniqueConstraint('store_id', 'external_order_id', name='uq_orders_store_external_order_id'),
        Index('ix_orders_order_status', 'order_status'),
        Index('ix_orders_order_date', 'order_date'),
    )

class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    external_item_id = Column(String(255), nullable=True)
    product_name = Column(String(500), nullable=False)
    sku = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    variant_title = Column(String(500), nullable=True)
    product_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="items")
    item_assignment = relationship("ItemAssignment", back_populates="order_item", uselist=False)

class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    vendor_assignment_id = Column(Integer, ForeignKey("vendor_assignments.id"), nullable=True)
    changed_by = Column(String(255), nullable=True)
    old_status = Column(String(50), nullable=True)
    new_status = Column(String(50), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="status_history")

class VendorAssignment(Base):
    __tablename__ = "vendor_assignments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    assigned_by = Column(String(255), nullable=True)
    assignment_type = Column(Enum(AssignmentType), nullable=False, default=AssignmentType.FULL)
    status = Column(Enum(AssignmentStatus), nullable=False, default=AssignmentStatus.ASSIGNED)
    commission_amount = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)
    assigned_at = Column(DateTime, default=datetime.utcnow)
    accepted_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="assignments")
    vendor = relationship("Vendor", back_populates="assignments")
    item_assignments = relationship("ItemAssignment", back_populates="vendor_assignment", cascade="all, delete-orphan")
    tracking = relationship("OrderTracking", back_populates="vendor_assignment")

    __table_args__ = (UniqueConstraint('order_id', 'vendor_id', name='uq_vendor_assignments_order_vendor'),)

class ItemAssignment(Base):
    __tablename__ = "order_item_assignments"

    id = Column(Integer, primary_key=True, index=True)
    vendor_assignment_id = Column(Integer, ForeignKey("vendor_assignments.id"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    assigned_amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    vendor_assignment = relationship("VendorAssignment", back_populates="item_assignments")
    order_item = relationship("OrderItem", back_populates="item_assignment")

    # An order item is covered by at most one item assignment at a time
    __table_args__ = (UniqueConstraint('order_item_id', name='uq_order_item_assignments_order_item'),)

class OrderTracking(Base):
    __tablename__ = "order_tracking"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    vendor_assignment_id = Column(Integer, ForeignKey("vendor_assignments.id"), nullable=False, index=True)
    tracking_number = Column(String(255), nullable=False)
    carrier = Column(String(100), nullable=True)
    tracking_url = Column(String(500), nullable=True)
    status = Column(Enum(TrackingStatus), nullable=False, default=TrackingStatus.SHIPPED)
    shipped_date = Column(DateTime, nullable=True)
    delivered_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    vendor_assignment = relationship("VendorAssignment", back_populates="tracking")

class SyncedProduct(Base):
    __tablename__ = "synced_products"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    external_product_id = Column(String(255), nullable=False)
    name = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    sku = Column(String(255), nullable=True, index=True)
    price = Column(Numeric(10, 2), nullable=True)
    inventory_quantity = Column(Integer, default=0)
    product_type = Column(String(255), nullable=True)
    images = Column(JSON, nullable=True)
    variants = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_synced_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    store = relationship("Store", back_populates="synced_products")
    vendor_links = relationship("ProductVendorAssignment", back_populates="product", cascade="all, delete-orphan")

    __table_args__ = (UniqueConstraint('store_id', 'external_product_id', name='uq_synced_products_store_external_product'),)

class ProductVendorAssignment(Base):
    __tablename__ = "product_vendor_assignments"

    id = Column(Integer, primary_key=True, index=True)
    synced_product_id = Column(Integer, ForeignKey("synced_products.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    is_default = Column(Boolean, default=False, nullable=False)
    priority = Column(Integer, default=1)
    commission_rate = Column(Numeric(5, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("SyncedProduct", back_populates="vendor_links")
    vendor = relationship("Vendor")

    __table_args__ = (UniqueConstraint('synced_product_id', 'vendor_id', name='uq_product_vendor_assignments_product_vendor'),)
