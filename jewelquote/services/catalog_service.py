"""Catalog service: the few catalog rules quote lines rely on."""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from jewelquote.exceptions import IntegrityGuardError, NotFoundError, ValidationError
from jewelquote.models import Category, Item


def create_category(session: Session, name: str) -> Category:
    name = (name or '').strip()
    if not name:
        raise ValidationError('Category name is required', field='name')
    if session.query(Category).filter(func.lower(Category.name) == name.lower()).first():
        raise ValidationError(f'A category named "{name}" already exists', field='name')

    try:
        category = Category(name=name)
        session.add(category)
        session.commit()
        return category
    except Exception:
        session.rollback()
        raise


def create_item(session: Session, sku: str, name: str, category_id: Optional[int] = None,
                base_price: Decimal = Decimal('0')) -> Item:
    sku = (sku or '').strip()
    name = (name or '').strip()
    if not sku:
        raise ValidationError('SKU is required', field='sku')
    if not name:
        raise ValidationError('Item name is required', field='name')
    if category_id is not None and session.get(Category, category_id) is None:
        raise NotFoundError(f'Category {category_id} not found')
    if session.query(Item.id).filter(func.lower(Item.sku) == sku.lower()).first():
        raise ValidationError(f'An item with SKU "{sku}" already exists', field='sku')

    try:
        item = Item(sku=sku, name=name, category_id=category_id, base_price=base_price)
        session.add(item)
        session.commit()
        return item
    except Exception:
        session.rollback()
        raise


def item_exists(session: Session, item_id) -> bool:
    return session.query(Item.id).filter(Item.id == item_id).first() is not None


def delete_category(session: Session, category_id: int) -> None:
    """Delete a category; categories that still hold items are locked."""
    category = session.get(Category, category_id)
    if not category:
        raise NotFoundError(f'Category {category_id} not found')

    item_count = session.query(func.count(Item.id)).filter(Item.category_id == category.id).scalar()
    if item_count:
        raise IntegrityGuardError(
            'Cannot delete category with existing items',
            payload={'item_count': item_count}
        )

    try:
        session.delete(category)
        session.commit()
    except Exception:
        session.rollback()
        raise


def list_categories(session: Session) -> List[Category]:
    return session.query(Category).order_by(Category.name).all()


def list_items(session: Session, category_id: Optional[int] = None, search: Optional[str] = None) -> List[Item]:
    query = session.query(Item)
    if category_id:
        query = query.filter(Item.category_id == category_id)
    if search:
        pattern = f'%{search.lower()}%'
        query = query.filter(or_(func.lower(Item.sku).like(pattern), func.lower(Item.name).like(pattern)))
    return query.order_by(Item.sku).all()
