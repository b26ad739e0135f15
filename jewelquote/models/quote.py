"""Quote model for jeweller-to-customer price proposals."""
import enum
from datetime import date
from sqlalchemy import (
    Column, BigInteger, Integer, String, Numeric, DateTime, Date, Text, JSON, ForeignKey
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelquote.database import Base, BigIntPK
from jewelquote.utils.formatters import decimal_str


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"  # reserved for invoicing

    @classmethod
    def values(cls):
        return [status.value for status in cls]


# Fields a version snapshot can roll back
RESTORABLE_FIELDS = ('markup_pct', 'discount', 'notes', 'subtotal', 'markup_amount', 'total')


class Quote(Base):
    """
    Quote (price proposal).

    Aggregate totals are derived: total = subtotal + markup_amount - discount,
    with markup_amount = subtotal * markup_pct / 100. The version counter
    starts at 1 and grows on every direct update and restore.
    """

    __tablename__ = 'quote'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_number = Column(String(20), nullable=False, unique=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id', ondelete='RESTRICT'), nullable=False)
    sku_code = Column(String(64), nullable=True)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    markup_pct = Column(Numeric(6, 2), nullable=False, default=0)
    markup_amount = Column(Numeric(14, 2), nullable=False, default=0)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    valid_until = Column(Date, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    quote_data = Column(JSON, nullable=True)  # serialized CostBreakdown
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('Customer', back_populates='quotes')
    items = relationship(
        'QuoteItem',
        back_populates='quote',
        cascade='all, delete-orphan',
        order_by='QuoteItem.sort_order'
    )
    versions = relationship(
        'QuoteVersion',
        back_populates='quote',
        cascade='all, delete-orphan',
        order_by='QuoteVersion.version_num.desc()'
    )

    def __repr__(self):
        return f"<Quote(id={self.id}, number='{self.quote_number}', status='{self.status}', total={self.total})>"

    @property
    def is_expired(self):
        """Check if a sent quote is past its validity date (calculated, not stored)."""
        if self.status == QuoteStatus.SENT.value and self.valid_until:
            return date.today() > self.valid_until
        return False

    @property
    def display_status(self):
        """Status shown to users; EXPIRED is inferred without being persisted."""
        return QuoteStatus.EXPIRED.value if self.is_expired else self.status

    def to_snapshot(self):
        """JSON-safe copy of the quote's own columns, as stored in a version."""
        return {
            'id': self.id,
            'quote_number': self.quote_number,
            'customer_id': self.customer_id,
            'sku_code': self.sku_code,
            'status': self.status,
            'subtotal': decimal_str(self.subtotal),
            'markup_pct': decimal_str(self.markup_pct),
            'markup_amount': decimal_str(self.markup_amount),
            'discount': decimal_str(self.discount),
            'total': decimal_str(self.total),
            'notes': self.notes,
            'valid_until': self.valid_until.isoformat() if self.valid_until else None,
            'version': self.version,
            'quote_data': self.quote_data,
        }

    def to_dict(self, include_items=False, include_versions=False, version_limit=10):
        data = self.to_snapshot()
        data['display_status'] = self.display_status
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        data['updated_at'] = self.updated_at.isoformat() if self.updated_at else None
        if self.customer is not None:
            data['customer'] = {
                'id': self.customer.id,
                'name': self.customer.name,
                'company': self.customer.company,
            }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        if include_versions:
            data['versions'] = [version.to_dict(include_snapshot=False)
                                for version in self.versions[:version_limit]]
        return data
