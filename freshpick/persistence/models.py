from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class ProductRecord(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    mrp: Mapped[float | None] = mapped_column(Float, nullable=True)
    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True, index=True)
    discount_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)

    variants: Mapped[list["ProductVariantRecord"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ProductVariantRecord(Base):
    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    variant_name: Mapped[str] = mapped_column(String(128), nullable=False)
    variant_value: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    variant_unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    mrp: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    product: Mapped[ProductRecord] = relationship(back_populates="variants")


class OrderRecord(Base):
    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, index=True)

    items: Mapped[list["OrderItemRecord"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class OrderItemRecord(Base):
    __tablename__ = "order_items"
    __table_args__ = (Index("ix_order_items_trending", "created_at", "product_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    order: Mapped[OrderRecord] = relationship(back_populates="items")


class ProductViewRecord(Base):
    __tablename__ = "user_product_views"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="user_product_views_unique"),
        Index("ix_user_views_recency", "user_id", "last_viewed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    first_viewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    last_viewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class CoPurchaseRecord(Base):
    __tablename__ = "product_co_purchases"
    __table_args__ = (Index("ix_co_purchases_lookup", "product_id", "co_purchase_count"),)

    product_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    co_product_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    co_purchase_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class CoPurchaseOrderRecord(Base):
    __tablename__ = "co_purchase_orders"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    counted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
