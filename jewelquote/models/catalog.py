"""Catalog models: categories and the items filed under them."""
from sqlalchemy import Column, BigInteger, String, Text, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelquote.database import Base, BigIntPK
from jewelquote.utils.formatters import decimal_str


class Category(Base):
    """Catalog category."""

    __tablename__ = 'category'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    items = relationship('Item', back_populates='category')

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Item(Base):
    """
    Catalog item.

    Quote lines may point at an item for traceability only; no price flows
    from the catalog into a line automatically.
    """

    __tablename__ = 'item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sku = Column(String(64), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(BigInteger, ForeignKey('category.id'), nullable=True)
    base_price = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    category = relationship('Category', back_populates='items')

    def __repr__(self):
        return f"<Item(id={self.id}, sku='{self.sku}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'name': self.name,
            'description': self.description,
            'category_id': self.category_id,
            'base_price': decimal_str(self.base_price),
        }
