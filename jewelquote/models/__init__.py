"""Models package - exports all SQLAlchemy models."""
from jewelquote.models.customer import Customer
from jewelquote.models.catalog import Category, Item
from jewelquote.models.setting import Setting
from jewelquote.models.quote import Quote, QuoteStatus, RESTORABLE_FIELDS
from jewelquote.models.quote_item import QuoteItem
from jewelquote.models.quote_version import QuoteVersion

__all__ = [
    'Customer', 'Category', 'Item', 'Setting',
    'Quote', 'QuoteStatus', 'RESTORABLE_FIELDS', 'QuoteItem', 'QuoteVersion',
]
