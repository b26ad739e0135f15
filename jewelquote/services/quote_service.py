"""Quote service: the quote aggregate, its numbering, status and version history."""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jewelquote.exceptions import BusinessLogicError, ConflictError, NotFoundError, ValidationError
from jewelquote.models import Customer, Quote, QuoteItem, QuoteStatus, RESTORABLE_FIELDS
from jewelquote.services.customer_service import customer_exists
from jewelquote.services.pricing_service import CostBreakdown
from jewelquote.services.quote_version_service import SnapshotOutcome, get_version, write_snapshot
from jewelquote.services.settings_service import DbSettingsProvider, SettingsProvider
from jewelquote.utils.number_format import parse_decimal, to_money

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
HUNDRED = Decimal('100')

# Only consulted when transitions are enforced; by default any status may follow any other.
STATUS_TRANSITIONS = {
    QuoteStatus.DRAFT.value: {QuoteStatus.SENT.value},
    QuoteStatus.SENT.value: {
        QuoteStatus.DRAFT.value, QuoteStatus.ACCEPTED.value,
        QuoteStatus.REJECTED.value, QuoteStatus.EXPIRED.value
    },
    QuoteStatus.ACCEPTED.value: {QuoteStatus.CONVERTED.value},
    QuoteStatus.REJECTED.value: {QuoteStatus.DRAFT.value},
    QuoteStatus.EXPIRED.value: {QuoteStatus.DRAFT.value, QuoteStatus.SENT.value},
    QuoteStatus.CONVERTED.value: set(),
}

SORTABLE_FIELDS = {
    'created_at': Quote.created_at,
    'updated_at': Quote.updated_at,
    'quote_number': Quote.quote_number,
    'total': Quote.total,
    'status': Quote.status,
}


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------

def calculate_quote_totals(line_totals, markup_pct: Decimal, discount: Decimal) -> Dict[str, Decimal]:
    """
    Aggregate totals from line totals.

    total = subtotal + subtotal * markup_pct / 100 - discount
    """
    subtotal = sum((Decimal(value or 0) for value in line_totals), ZERO)
    markup_amount = to_money(subtotal * Decimal(markup_pct or 0) / HUNDRED)
    total = subtotal + markup_amount - Decimal(discount or 0)
    return {'subtotal': subtotal, 'markup_amount': markup_amount, 'total': total}


def recalculate_quote_totals(session: Session, quote: Quote) -> Dict[str, Decimal]:
    """
    Overwrite the quote's subtotal, markup and total from ALL of its lines.

    Pending line changes are flushed first so the query sees them. The
    caller commits.
    """
    session.flush()
    line_totals = [
        row.line_total for row in
        session.query(QuoteItem.line_total).filter(QuoteItem.quote_id == quote.id).all()
    ]
    totals = calculate_quote_totals(line_totals, quote.markup_pct, quote.discount)
    quote.subtotal = totals['subtotal']
    quote.markup_amount = totals['markup_amount']
    quote.total = totals['total']
    return totals


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_quote(session: Session, quote_id: int) -> Quote:
    quote = session.get(Quote, quote_id)
    if not quote:
        raise NotFoundError(f'Quote {quote_id} not found')
    return quote


def get_quote_for_update(session: Session, quote_id: int) -> Quote:
    """
    Load the quote row locked for the rest of the transaction.

    populate_existing refreshes an already loaded instance, so a stale copy
    in the identity map never feeds a read-modify-write.
    """
    quote = session.query(Quote).filter(
        Quote.id == quote_id
    ).with_for_update().populate_existing().first()
    if not quote:
        raise NotFoundError(f'Quote {quote_id} not found')
    return quote


def list_quotes(
    session: Session,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    sort_by: str = 'created_at',
    sort_order: str = 'desc',
) -> Tuple[List[Quote], int]:
    """Paginated quote list. Returns (quotes, total matching rows)."""
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 20), 1), 100)

    query = session.query(Quote).join(Customer, Quote.customer_id == Customer.id)

    if search:
        pattern = f'%{search.lower()}%'
        query = query.filter(
            or_(
                func.lower(Quote.quote_number).like(pattern),
                func.lower(Customer.name).like(pattern),
                func.lower(Quote.notes).like(pattern)
            )
        )

    if status:
        query = query.filter(Quote.status == status.upper())

    if customer_id:
        query = query.filter(Quote.customer_id == customer_id)

    total = query.count()

    column = SORTABLE_FIELDS.get(sort_by, Quote.created_at)
    ordering = column.asc() if str(sort_order).lower() == 'asc' else column.desc()
    quotes = query.order_by(ordering, Quote.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return quotes, total


# ---------------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------------

def generate_quote_number(session: Session, year: Optional[int] = None) -> str:
    """
    Next quote number for the year: Q<year>-<4 digit sequence>.

    The sequence continues from the highest number issued this year, so
    deleted quotes never cause a number to be handed out twice.
    """
    year = year or datetime.now().year
    prefix = f'Q{year}-'

    numbers = session.query(Quote.quote_number).filter(Quote.quote_number.like(f'{prefix}%')).all()
    highest = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))

    return f'{prefix}{str(highest + 1).zfill(4)}'


def _insert_with_quote_number(session: Session, quote: Quote, max_retries: int) -> Quote:
    """Insert the quote, retrying with a fresh number when another writer took ours."""
    for attempt in range(1, max_retries + 1):
        quote.quote_number = generate_quote_number(session)
        try:
            with session.begin_nested():
                session.add(quote)
            return quote
        except IntegrityError:
            logger.warning(f"Quote number {quote.quote_number} already taken (attempt {attempt}/{max_retries})")

    raise ConflictError('Could not allocate a quote number, please retry')


# ---------------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------------

def _parse_date(value: Any, field: str) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip()[:10]).date()
    except ValueError:
        raise ValidationError(f'{field} must be a valid date (YYYY-MM-DD)', field=field)


def _parse_status(value: Any) -> str:
    status = str(value or '').strip().upper()
    if status not in QuoteStatus.values():
        raise ValidationError(
            f"Status must be one of: {', '.join(QuoteStatus.values())}", field='status'
        )
    return status


def _parse_quote_data(value: Any) -> Optional[Dict[str, Any]]:
    """Normalise the cost breakdown through its typed form before storing it."""
    if value is None or value == '':
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ValidationError('quote_data must be valid JSON', field='quote_data')
    return CostBreakdown.from_dict(value).to_dict()


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _check_transition(current: str, new: str, enforce: bool) -> None:
    if not enforce or current == new:
        return
    if new not in STATUS_TRANSITIONS.get(current, set()):
        raise BusinessLogicError(f'Cannot change quote status from {current} to {new}')


# ---------------------------------------------------------------------------
# Aggregate operations
# ---------------------------------------------------------------------------

def create_quote(
    session: Session,
    data: Dict[str, Any],
    settings: Optional[SettingsProvider] = None,
    max_retries: int = 5,
) -> Quote:
    """
    Create a DRAFT quote for an existing customer.

    markup_pct falls back to the business default. Totals start at zero
    unless the caller already priced the quote client-side and sends them.
    """
    settings = settings or DbSettingsProvider(session)

    customer_id = data.get('customer_id')
    if customer_id in (None, ''):
        raise ValidationError('Customer is required', field='customer_id')
    if not customer_exists(session, customer_id):
        raise ValidationError('Customer not found', field='customer_id')

    markup_pct = parse_decimal(data.get('markup_pct'), 'markup_pct', minimum=ZERO)
    if markup_pct is None:
        markup_pct = settings.default_markup_pct()

    try:
        quote = Quote(
            customer_id=int(customer_id),
            sku_code=_clean_text(data.get('sku_code')),
            status=QuoteStatus.DRAFT.value,
            markup_pct=markup_pct,
            discount=parse_decimal(data.get('discount'), 'discount', default=ZERO, minimum=ZERO),
            subtotal=parse_decimal(data.get('subtotal'), 'subtotal', default=ZERO),
            markup_amount=parse_decimal(data.get('markup_amount'), 'markup_amount', default=ZERO),
            total=parse_decimal(data.get('total'), 'total', default=ZERO),
            notes=_clean_text(data.get('notes')),
            valid_until=_parse_date(data.get('valid_until'), 'valid_until'),
            quote_data=_parse_quote_data(data.get('quote_data')),
            version=1
        )
        _insert_with_quote_number(session, quote, max_retries)
        session.commit()
        logger.info(f"Quote {quote.quote_number} created for customer {quote.customer_id}")
        return quote
    except Exception:
        session.rollback()
        raise


def update_quote(
    session: Session,
    quote_id: int,
    data: Dict[str, Any],
    enforce_transitions: bool = False,
) -> Tuple[Quote, SnapshotOutcome]:
    """
    Direct (partial) edit of quote fields.

    The pre-update state is snapshotted at the current version, only the
    supplied keys are applied, and the version always goes up by one.
    Supplied subtotal / markup_amount / total overwrite the stored values
    as-is; changing markup_pct or discount does not recompute them.
    """
    try:
        quote = get_quote_for_update(session, quote_id)

        # Parse everything before touching history so bad input leaves no trace
        changes: Dict[str, Any] = {}
        if 'customer_id' in data and data['customer_id'] not in (None, ''):
            if not customer_exists(session, data['customer_id']):
                raise ValidationError('Customer not found', field='customer_id')
            changes['customer_id'] = int(data['customer_id'])
        if 'sku_code' in data:
            changes['sku_code'] = _clean_text(data['sku_code'])
        for key in ('markup_pct', 'discount'):
            if key in data:
                value = parse_decimal(data[key], key, minimum=ZERO)
                if value is not None:
                    changes[key] = value
        for key in ('subtotal', 'markup_amount', 'total'):
            if key in data:
                value = parse_decimal(data[key], key)
                if value is not None:
                    changes[key] = value
        if 'notes' in data:
            changes['notes'] = _clean_text(data['notes'])
        if 'valid_until' in data:
            changes['valid_until'] = _parse_date(data['valid_until'], 'valid_until')
        if 'quote_data' in data:
            changes['quote_data'] = _parse_quote_data(data['quote_data'])
        if data.get('status'):
            status = _parse_status(data['status'])
            _check_transition(quote.status, status, enforce_transitions)
            changes['status'] = status

        outcome = write_snapshot(session, quote, _clean_text(data.get('change_notes')) or 'Quote updated')

        for key, value in changes.items():
            setattr(quote, key, value)
        quote.version = quote.version + 1

        session.commit()
        logger.info(f"Quote {quote.quote_number} updated to v{quote.version} (snapshot {outcome.value})")
        return quote, outcome
    except Exception:
        session.rollback()
        raise


def update_quote_status(
    session: Session,
    quote_id: int,
    status: Any,
    enforce_transitions: bool = False,
) -> Quote:
    """Set the quote status. Any status may follow any other unless transitions are enforced."""
    new_status = _parse_status(status)
    try:
        quote = get_quote_for_update(session, quote_id)
        _check_transition(quote.status, new_status, enforce_transitions)
        quote.status = new_status
        session.commit()
        return quote
    except Exception:
        session.rollback()
        raise


def delete_quote(session: Session, quote_id: int) -> None:
    """Delete a quote together with its lines and version history."""
    try:
        quote = get_quote_for_update(session, quote_id)
        number = quote.quote_number
        session.delete(quote)
        session.commit()
        logger.info(f"Quote {number} deleted")
    except Exception:
        session.rollback()
        raise


LINE_COPY_FIELDS = (
    'item_id', 'description', 'quantity', 'labour_hours', 'labour_rate', 'labour_total',
    'metal_type', 'metal_karat', 'metal_grams', 'metal_price', 'metal_total',
    'accessories', 'extras_total', 'unit_price', 'line_total', 'notes', 'sort_order',
)


def duplicate_quote(session: Session, quote_id: int, max_retries: int = 5) -> Quote:
    """
    Copy a quote into a new DRAFT with its own number.

    Totals and every line are copied as they are; validity is cleared and
    version history is not carried over.
    """
    try:
        original = get_quote_for_update(session, quote_id)
        source_number = original.quote_number

        duplicate = Quote(
            customer_id=original.customer_id,
            status=QuoteStatus.DRAFT.value,
            subtotal=original.subtotal,
            markup_pct=original.markup_pct,
            markup_amount=original.markup_amount,
            discount=original.discount,
            total=original.total,
            notes=f'Copy of {source_number}: {original.notes}' if original.notes else f'Copy of {source_number}',
            valid_until=None,
            quote_data=original.quote_data,
            version=1
        )
        _insert_with_quote_number(session, duplicate, max_retries)

        for line in original.items:
            session.add(QuoteItem(
                quote_id=duplicate.id,
                **{name: getattr(line, name) for name in LINE_COPY_FIELDS}
            ))

        session.commit()
        logger.info(f"Quote {source_number} duplicated as {duplicate.quote_number}")
        return duplicate
    except Exception:
        session.rollback()
        raise


def restore_quote_version(session: Session, quote_id: int, version_num: int) -> Tuple[Quote, SnapshotOutcome]:
    """
    Roll the quote's aggregate fields back to a stored version.

    Only markup_pct, discount, notes, subtotal, markup_amount and total are
    restored; line items are left exactly as they are. The current state is
    snapshotted first so the restore itself can be undone.
    """
    try:
        version = get_version(session, quote_id, version_num)
        snapshot = version.snapshot_json or {}
        quote = get_quote_for_update(session, quote_id)

        outcome = write_snapshot(session, quote, f'Restored to version {version_num}')

        for key in RESTORABLE_FIELDS:
            if key not in snapshot:
                continue
            value = snapshot[key]
            if key == 'notes':
                quote.notes = value
            else:
                setattr(quote, key, Decimal(str(value)) if value is not None else ZERO)
        quote.version = quote.version + 1

        session.commit()
        logger.info(f"Quote {quote.quote_number} restored to v{version_num}, now v{quote.version}")
        return quote, outcome
    except Exception:
        session.rollback()
        raise
