"""Sample SQLModel tables used throughout the test suite.

users 1--* orders 1--* order_items *--1 products

- deleting a user cascades to its orders and their items
- deleting a product that still has order items is restricted
- user emails and product SKUs are unique
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer
from sqlmodel import Field, Relationship, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(max_length=200, unique=True)
    created_at: datetime = Field(default_factory=_utcnow)

    orders: list["Order"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True},
    )


class Product(SQLModel, table=True):
    __tablename__ = "products"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    sku: str = Field(max_length=20, unique=True)
    price: float = 0.0
    description: str | None = None
    is_active: bool = True


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        )
    )
    total: float = 0.0
    status: OrderStatus = OrderStatus.PENDING

    user: User | None = Relationship(back_populates="orders")
    items: list["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True},
    )


class OrderItem(SQLModel, table=True):
    __tablename__ = "order_items"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
        )
    )
    product_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
        )
    )
    quantity: int = 1
    unit_price: float = 0.0

    order: Order | None = Relationship(back_populates="items")
    product: Product | None = Relationship()
