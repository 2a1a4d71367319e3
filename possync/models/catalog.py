"""Catalog mirror models — products, customers and settings pulled from the server.

Rows are overwritten wholesale on every successful pull; the terminal never
creates them. Server timestamps are kept verbatim as strings.
"""

from sqlalchemy import JSON, Boolean, Column, Float, Integer, String

from .base import Base


class LocalProduct(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False)
    retail_price = Column(Float, default=0)
    wholesale_price = Column(Float, default=0)
    cost_price = Column(Float, default=0)
    stock_quantity = Column(Integer, default=0)
    barcode = Column(String(100), index=True)
    sku = Column(String(100), index=True)
    status = Column(String(20), default="active", index=True)
    is_service = Column(Boolean, default=False)
    image_url = Column(String(500))
    category_id = Column(Integer)
    created_at = Column(String(40))
    updated_at = Column(String(40))


class LocalCustomer(Base):
    """Read-only on the terminal; customer creation lives elsewhere."""

    __tablename__ = "customers"
    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), index=True)
    email = Column(String(255))
    address = Column(String(500))
    created_at = Column(String(40))


class LocalSetting(Base):
    """Key-value settings (tax_rate, store_info, device_id, drafts)."""

    __tablename__ = "settings"
    key = Column(String(100), primary_key=True)
    value = Column(JSON)
