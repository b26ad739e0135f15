"""Setting model (business-wide key/value configuration)."""
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from jewelquote.database import Base


class Setting(Base):
    """Key/value setting row. Values are stored as strings."""

    __tablename__ = 'setting'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False, default='')
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Setting(key='{self.key}', value='{self.value}')>"
