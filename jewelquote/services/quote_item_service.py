"""Quote line ledger: priced lines and the quote totals derived from them."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from jewelquote.exceptions import NotFoundError, ValidationError
from jewelquote.models import QuoteItem
from jewelquote.services.catalog_service import item_exists
from jewelquote.services.quote_service import get_quote_for_update, recalculate_quote_totals
from jewelquote.services.settings_service import DbSettingsProvider, SettingsProvider
from jewelquote.utils.number_format import CENT, parse_decimal, parse_int, to_money, to_scale

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

# Priced inputs are held at their column scale so a stored line re-prices to the same total
INPUT_SCALES = {
    'labour_hours': CENT,
    'labour_rate': CENT,
    'metal_grams': Decimal('0.001'),
    'metal_price': CENT,
}


def _measure(value: Any, field: str, default: Optional[Decimal] = None) -> Optional[Decimal]:
    return to_scale(parse_decimal(value, field, default=default, minimum=ZERO), INPUT_SCALES[field])


def parse_accessories(value: Any) -> Tuple[List[Dict[str, str]], Decimal]:
    """
    Validate an accessories list of {name, price} entries.

    Returns the normalised list (prices as decimal strings) and the sum of
    the prices.
    """
    if value is None or value == '':
        return [], ZERO
    if not isinstance(value, list):
        raise ValidationError('accessories must be a list', field='accessories')

    accessories = []
    extras_total = ZERO
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise ValidationError(f'accessories[{index}] must be an object', field='accessories')
        price = parse_decimal(entry.get('price'), f'accessories[{index}].price', default=ZERO, minimum=ZERO)
        accessories.append({'name': str(entry.get('name') or '').strip(), 'price': str(price)})
        extras_total += price
    return accessories, extras_total


def price_line(line: QuoteItem, extras_total: Decimal) -> None:
    """
    Fill the derived money fields of a line from its inputs.

    labour_total = hours * rate, metal_total = grams * price per gram,
    unit_price = labour + metal + extras, line_total = unit_price * quantity.
    """
    line.labour_total = to_money(line.labour_hours * line.labour_rate)
    line.metal_total = to_money(line.metal_grams * line.metal_price)
    line.extras_total = to_money(extras_total)
    line.unit_price = line.labour_total + line.metal_total + line.extras_total
    line.line_total = line.unit_price * line.quantity


def _description(value: Any) -> str:
    description = str(value or '').strip()
    if not description:
        raise ValidationError('Description is required', field='description')
    return description


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _item_reference(session: Session, value: Any) -> Optional[int]:
    item_id = parse_int(value, 'item_id')
    if item_id is not None and not item_exists(session, item_id):
        raise ValidationError(f'Catalog item {item_id} not found', field='item_id')
    return item_id


def _get_line(session: Session, quote_id: int, item_id: int) -> QuoteItem:
    line = session.query(QuoteItem).filter(
        QuoteItem.id == item_id,
        QuoteItem.quote_id == quote_id
    ).populate_existing().first()
    if not line:
        raise NotFoundError(f'Quote item {item_id} not found')
    return line


def add_quote_item(
    session: Session,
    quote_id: int,
    data: Dict[str, Any],
    settings: Optional[SettingsProvider] = None,
) -> Tuple[QuoteItem, Dict[str, Decimal]]:
    """
    Price a new line and append it to the quote.

    The labour rate defaults to the business setting (350 when unset), the
    metal price to zero and the quantity to 1. Hours, rates and prices are
    rounded to cents and grams to 0.001 before pricing. The quote's totals
    are recomputed from all of its lines in the same transaction.

    Returns:
        (line, quote totals)
    """
    settings = settings or DbSettingsProvider(session)

    try:
        quote = get_quote_for_update(session, quote_id)

        description = _description(data.get('description'))
        quantity = parse_int(data.get('quantity'), 'quantity', default=1, minimum=1)
        labour_hours = _measure(data.get('labour_hours'), 'labour_hours', default=ZERO)
        labour_rate = _measure(data.get('labour_rate'), 'labour_rate')
        metal_karat = parse_int(data.get('metal_karat'), 'metal_karat', minimum=0)
        metal_grams = _measure(data.get('metal_grams'), 'metal_grams', default=ZERO)
        metal_price = _measure(data.get('metal_price'), 'metal_price', default=ZERO)
        accessories, extras_total = parse_accessories(data.get('accessories'))
        item_id = _item_reference(session, data.get('item_id'))

        if labour_rate is None:
            labour_rate = to_scale(settings.default_labour_rate(), INPUT_SCALES['labour_rate'])

        max_sort = session.query(func.max(QuoteItem.sort_order)).filter(
            QuoteItem.quote_id == quote.id
        ).scalar()

        line = QuoteItem(
            quote=quote,
            item_id=item_id,
            description=description,
            quantity=quantity,
            labour_hours=labour_hours,
            labour_rate=labour_rate,
            metal_type=_text(data.get('metal_type')),
            metal_karat=metal_karat,
            metal_grams=metal_grams,
            metal_price=metal_price,
            accessories=accessories,
            notes=_text(data.get('notes')),
            sort_order=(max_sort or 0) + 1
        )
        price_line(line, extras_total)
        session.add(line)

        totals = recalculate_quote_totals(session, quote)
        session.commit()
        logger.info(f"Line {line.id} added to quote {quote.quote_number}, subtotal now {totals['subtotal']}")
        return line, totals
    except Exception:
        session.rollback()
        raise


def update_quote_item(
    session: Session,
    quote_id: int,
    item_id: int,
    data: Dict[str, Any],
) -> Tuple[QuoteItem, Dict[str, Decimal]]:
    """
    Partially update a line and re-price it.

    Omitted fields keep their stored values, including the metal price the
    line was originally captured with.
    """
    try:
        quote = get_quote_for_update(session, quote_id)
        line = _get_line(session, quote.id, item_id)

        if 'description' in data:
            line.description = _description(data['description'])
        if 'item_id' in data:
            line.item_id = _item_reference(session, data['item_id'])
        if 'quantity' in data:
            line.quantity = parse_int(data['quantity'], 'quantity', default=line.quantity, minimum=1)
        for field in ('labour_hours', 'labour_rate', 'metal_grams', 'metal_price'):
            if field in data:
                setattr(line, field, _measure(data[field], field, default=getattr(line, field)))
        if 'metal_type' in data:
            line.metal_type = _text(data['metal_type'])
        if 'metal_karat' in data:
            line.metal_karat = parse_int(data['metal_karat'], 'metal_karat', minimum=0)
        if 'notes' in data:
            line.notes = _text(data['notes'])

        if 'accessories' in data:
            line.accessories, extras_total = parse_accessories(data['accessories'])
        else:
            extras_total = line.extras_total or ZERO

        price_line(line, extras_total)

        totals = recalculate_quote_totals(session, quote)
        session.commit()
        return line, totals
    except Exception:
        session.rollback()
        raise


def remove_quote_item(session: Session, quote_id: int, item_id: int) -> Dict[str, Decimal]:
    """Delete a line and recompute the quote's totals from the remaining lines."""
    try:
        quote = get_quote_for_update(session, quote_id)
        line = _get_line(session, quote.id, item_id)

        quote.items.remove(line)

        totals = recalculate_quote_totals(session, quote)
        session.commit()
        logger.info(f"Line {item_id} removed from quote {quote.quote_number}")
        return totals
    except Exception:
        session.rollback()
        raise
