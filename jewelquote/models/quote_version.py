"""QuoteVersion model: append-only snapshots of a quote."""
from sqlalchemy import Column, BigInteger, Integer, Text, JSON, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelquote.database import Base, BigIntPK


class QuoteVersion(Base):
    """
    Immutable point-in-time copy of a quote.

    version_num equals the quote's version counter when the snapshot was
    taken, so (quote_id, version_num) is unique.
    """

    __tablename__ = 'quote_version'
    __table_args__ = (
        UniqueConstraint('quote_id', 'version_num', name='uq_quote_version_num'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id', ondelete='CASCADE'), nullable=False, index=True)
    version_num = Column(Integer, nullable=False)
    snapshot_json = Column(JSON, nullable=False)
    change_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    quote = relationship('Quote', back_populates='versions')

    def __repr__(self):
        return f"<QuoteVersion(quote_id={self.quote_id}, version_num={self.version_num})>"

    def to_dict(self, include_snapshot=True):
        data = {
            'id': self.id,
            'quote_id': self.quote_id,
            'version_num': self.version_num,
            'change_notes': self.change_notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_snapshot:
            data['snapshot'] = self.snapshot_json
        return data
