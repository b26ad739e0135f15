"""QuoteItem model for priced quote lines."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, Text, JSON, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelquote.database import Base, BigIntPK
from jewelquote.utils.formatters import decimal_str


class QuoteItem(Base):
    """
    Quote line.

    line_total = (labour_total + metal_total + extras_total) * quantity.
    The metal price is captured when the line is entered and never follows
    the live metal feed afterwards.
    """

    __tablename__ = 'quote_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id', ondelete='CASCADE'), nullable=False, index=True)
    item_id = Column(BigInteger, ForeignKey('item.id', ondelete='SET NULL'), nullable=True)
    description = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    labour_hours = Column(Numeric(10, 2), nullable=False, default=0)
    labour_rate = Column(Numeric(14, 2), nullable=False, default=0)
    labour_total = Column(Numeric(14, 2), nullable=False, default=0)
    metal_type = Column(String(50), nullable=True)
    metal_karat = Column(Integer, nullable=True)
    metal_grams = Column(Numeric(10, 3), nullable=False, default=0)
    metal_price = Column(Numeric(14, 2), nullable=False, default=0)
    metal_total = Column(Numeric(14, 2), nullable=False, default=0)
    accessories = Column(JSON, nullable=True)  # [{"name": ..., "price": ...}]
    extras_total = Column(Numeric(14, 2), nullable=False, default=0)
    unit_price = Column(Numeric(14, 2), nullable=False, default=0)
    line_total = Column(Numeric(14, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    quote = relationship('Quote', back_populates='items')
    item = relationship('Item', foreign_keys=[item_id])

    def __repr__(self):
        return f"<QuoteItem(id={self.id}, quote_id={self.quote_id}, description='{self.description}', total={self.line_total})>"

    def to_dict(self):
        return {
            'id': self.id,
            'quote_id': self.quote_id,
            'item_id': self.item_id,
            'description': self.description,
            'quantity': self.quantity,
            'labour_hours': decimal_str(self.labour_hours),
            'labour_rate': decimal_str(self.labour_rate),
            'labour_total': decimal_str(self.labour_total),
            'metal_type': self.metal_type,
            'metal_karat': self.metal_karat,
            'metal_grams': decimal_str(self.metal_grams),
            'metal_price': decimal_str(self.metal_price),
            'metal_total': decimal_str(self.metal_total),
            'accessories': self.accessories or [],
            'extras_total': decimal_str(self.extras_total),
            'unit_price': decimal_str(self.unit_price),
            'line_total': decimal_str(self.line_total),
            'notes': self.notes,
            'sort_order': self.sort_order,
        }
