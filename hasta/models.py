import uuid
import enum
from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    JSON,
    Enum,
    ForeignKey,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from hasta.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def _enum(enum_cls, name):
    # Persist the wire values ("pending-payment-approval"), not member names
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# =========================
# ENUMS
# =========================

class Role(str, enum.Enum):
    user = "user"
    admin = "admin"


class OrderStatus(str, enum.Enum):
    pending_payment_approval = "pending-payment-approval"
    pending = "pending"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class OrderReturnStatus(str, enum.Enum):
    none = "none"
    requested = "requested"
    approved = "approved"
    rejected = "rejected"
    refunded = "refunded"


class ReturnStatus(str, enum.Enum):
    pending_review = "pending-review"
    approved = "approved"
    rejected = "rejected"
    refunded = "refunded"


class ReturnReason(str, enum.Enum):
    damaged_item = "damaged-item"
    wrong_item = "wrong-item"
    missing_parts = "missing-parts"
    other = "other"


class PaymentMethod(str, enum.Enum):
    upi_full = "UPI_FULL"
    upi_partial = "UPI_PARTIAL"


class RequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class RequestType(str, enum.Enum):
    bulk = "bulk"
    customize = "customize"


class AddressType(str, enum.Enum):
    home = "Home"
    work = "Work"
    other = "Other"


# =========================
# USER
# =========================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)

    # Anonymous identities carry neither email nor password
    email = Column(String, unique=True, index=True)
    password_hash = Column(String)

    full_name = Column(String)
    phone = Column(String)

    role = Column(String, default=Role.user.value, nullable=False)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    cart_lines = relationship(
        "CartLine",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    addresses = relationship(
        "Address",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    orders = relationship("Order", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin.value


# =========================
# PRODUCT
# =========================

class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)

    name = Column(String, nullable=False)
    description = Column(Text)
    category = Column(String, index=True)
    material = Column(String, index=True)

    images = Column(JSON, default=list)

    in_stock = Column(Boolean, default=True, nullable=False)

    # Flat price, used only when there are no variants
    base_mrp = Column(Float)
    gst = Column(Float, default=5)

    # [{"size": "M", "price": 120.0}, ...] in display order
    variants = Column(JSON, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


Index("idx_products_category_material", Product.category, Product.material)


# =========================
# CART
# =========================

class CartLine(Base):
    __tablename__ = "cart_lines"

    id = Column(String(36), primary_key=True, default=new_id)

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # No FK: a line may outlive its product and is then skipped on read
    product_id = Column(String(36), nullable=False, index=True)
    selected_size = Column(String)
    quantity = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="cart_lines")


Index("idx_cart_lines_user_product", CartLine.user_id, CartLine.product_id)


# =========================
# ADDRESS
# =========================

class Address(Base):
    __tablename__ = "shipping_addresses"

    id = Column(String(36), primary_key=True, default=new_id)

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    pincode = Column(String(6), nullable=False)
    phone = Column(String, nullable=False)
    address_type = Column(_enum(AddressType, "address_type"), default=AddressType.home, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="addresses")


# =========================
# ORDER
# =========================

class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    order_date = Column(DateTime(timezone=True), server_default=func.now())

    subtotal = Column(Float, nullable=False)
    shipping_fee = Column(Float, nullable=False, default=0)
    gst_amount = Column(Float, nullable=False, default=0)
    cgst_amount = Column(Float, nullable=False, default=0)
    sgst_amount = Column(Float, nullable=False, default=0)
    igst_amount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False)

    status = Column(
        _enum(OrderStatus, "order_status"),
        default=OrderStatus.pending_payment_approval,
        nullable=False,
    )

    # Mirror of the latest return request, read by order listings
    return_status = Column(
        _enum(OrderReturnStatus, "order_return_status"),
        default=OrderReturnStatus.none,
        nullable=False,
    )

    delivery_date = Column(DateTime(timezone=True))

    shipping_details = Column(JSON, nullable=False)

    payment_method = Column(_enum(PaymentMethod, "payment_method"), nullable=False)
    # {advance_amount, remaining_amount, utr, payment_percentage, transaction_id}
    payment_details = Column(JSON)

    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
    )
    return_requests = relationship(
        "ReturnRequest",
        back_populates="order",
        cascade="all, delete-orphan",
    )


Index("idx_orders_status", Order.status)
Index("idx_orders_order_date", Order.order_date)


class OrderItem(Base):
    """Immutable snapshot of a cart line at checkout time."""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)

    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id = Column(String(36), nullable=False)
    product_name = Column(String, nullable=False)
    product_image = Column(String)
    size = Column(String)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="items")

    @property
    def subtotal(self) -> float:
        return round(self.price * self.quantity, 2)


# =========================
# RETURN REQUEST
# =========================

class ReturnRequest(Base):
    __tablename__ = "return_requests"

    id = Column(String(36), primary_key=True, default=new_id)

    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    request_date = Column(DateTime(timezone=True), server_default=func.now())

    reason = Column(_enum(ReturnReason, "return_reason"), nullable=False)
    status = Column(
        _enum(ReturnStatus, "return_status"),
        default=ReturnStatus.pending_review,
        nullable=False,
    )

    # [{product_id, product_name, quantity, price}]
    items = Column(JSON, nullable=False)
    customer_comments = Column(Text)
    damage_images = Column(JSON, default=list)

    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    order = relationship("Order", back_populates="return_requests")


Index("idx_return_requests_status", ReturnRequest.status)


# =========================
# B2B ORDER REQUEST
# =========================

class OrderRequest(Base):
    __tablename__ = "order_requests"

    id = Column(String(36), primary_key=True, default=new_id)

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
    )

    order_type = Column(_enum(RequestType, "request_type"), nullable=False)
    materials = Column(JSON, nullable=False)
    requirement_date = Column(String, nullable=False)
    customer_details = Column(JSON, nullable=False)

    status = Column(
        _enum(RequestStatus, "request_status"),
        default=RequestStatus.pending,
        nullable=False,
    )
    admin_note = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


Index("idx_order_requests_status", OrderRequest.status)
