"""Customer directory operations the quote engine depends on."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from jewelquote.exceptions import IntegrityGuardError, NotFoundError, ValidationError
from jewelquote.models import Customer, Quote

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ('name', 'company', 'phone', 'email', 'address', 'notes')


def customer_exists(session: Session, customer_id) -> bool:
    if customer_id is None:
        return False
    try:
        customer_id = int(customer_id)
    except (TypeError, ValueError):
        return False
    return session.query(Customer.id).filter(Customer.id == customer_id).first() is not None


def get_customer(session: Session, customer_id: int) -> Customer:
    customer = session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f'Customer {customer_id} not found')
    return customer


def list_customers(session: Session, search: Optional[str] = None) -> List[Customer]:
    query = session.query(Customer)
    if search:
        pattern = f'%{search.lower()}%'
        query = query.filter(
            or_(
                func.lower(Customer.name).like(pattern),
                func.lower(Customer.company).like(pattern),
                func.lower(Customer.email).like(pattern)
            )
        )
    return query.order_by(Customer.name).all()


def create_customer(session: Session, data: Dict[str, Any]) -> Customer:
    """Create a customer; the name is required."""
    values = {key: (str(data[key]).strip() or None) if data.get(key) is not None else None
              for key in CUSTOMER_FIELDS}
    if not values['name']:
        raise ValidationError('Customer name is required', field='name')

    try:
        customer = Customer(**values)
        session.add(customer)
        session.commit()
        return customer
    except Exception:
        session.rollback()
        raise


def update_customer(session: Session, customer_id: int, data: Dict[str, Any]) -> Customer:
    customer = get_customer(session, customer_id)
    if 'name' in data and not str(data['name'] or '').strip():
        raise ValidationError('Customer name is required', field='name')

    try:
        for key in CUSTOMER_FIELDS:
            if key in data:
                setattr(customer, key, (str(data[key]).strip() or None) if data[key] is not None else None)
        session.commit()
        return customer
    except Exception:
        session.rollback()
        raise


def delete_customer(session: Session, customer_id: int) -> None:
    """
    Delete a customer.

    Quotes keep a permanent reference to their customer, so a customer with
    any quote is locked rather than cascaded.
    """
    customer = get_customer(session, customer_id)

    quote_count = session.query(func.count(Quote.id)).filter(Quote.customer_id == customer.id).scalar()
    if quote_count:
        raise IntegrityGuardError(
            'Cannot delete customer with existing quotes',
            payload={'quote_count': quote_count}
        )

    try:
        session.delete(customer)
        session.commit()
        logger.info(f"Customer {customer_id} deleted")
    except Exception:
        session.rollback()
        raise
