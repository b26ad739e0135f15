"""Customer model."""
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelquote.database import Base, BigIntPK


class Customer(Base):
    """Customer of the workshop. Quotes reference it and lock it against deletion."""

    __tablename__ = 'customer'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    company = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    quotes = relationship('Quote', back_populates='customer')

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'company': self.company,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'notes': self.notes,
        }
