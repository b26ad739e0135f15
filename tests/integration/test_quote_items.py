"""
Integration tests for quote lines and the totals derived from them.
"""

import pytest
from decimal import Decimal

from jewelquote.exceptions import NotFoundError, ValidationError
from jewelquote.models import Quote, QuoteItem
from jewelquote.services.catalog_service import create_item
from jewelquote.services.quote_item_service import add_quote_item, remove_quote_item, update_quote_item
from jewelquote.services.quote_service import create_quote, recalculate_quote_totals, update_quote
from jewelquote.services.settings_service import StaticSettingsProvider, upsert_setting


def _line_sum(session, quote_id):
    return sum((item.line_total for item in session.query(QuoteItem).filter_by(quote_id=quote_id)), Decimal('0'))


class TestLedgerScenarios:
    """Walk through the standard add / add / remove sequence."""

    def test_empty_quote_is_zero(self, quote):
        assert quote.subtotal == 0
        assert quote.markup_amount == 0
        assert quote.total == 0

    def test_labour_line(self, session, quote, labour_line, settings):
        line, totals = add_quote_item(session, quote.id, labour_line, settings=settings)

        assert line.labour_total == Decimal('900')
        assert line.metal_total == 0
        assert line.extras_total == 0
        assert line.unit_price == Decimal('900')
        assert line.line_total == Decimal('900')
        assert totals == {'subtotal': Decimal('900'), 'markup_amount': Decimal('270'), 'total': Decimal('1170')}
        assert quote.subtotal == Decimal('900')
        assert quote.total == Decimal('1170')

    def test_second_metal_line(self, session, quote, labour_line, metal_line, settings):
        add_quote_item(session, quote.id, labour_line, settings=settings)
        line, totals = add_quote_item(session, quote.id, metal_line, settings=settings)

        assert line.metal_total == Decimal('5000')
        assert line.labour_total == 0
        assert line.line_total == Decimal('5000')
        assert line.metal_karat == 18
        assert totals['subtotal'] == Decimal('5900')
        assert totals['markup_amount'] == Decimal('1770')
        assert totals['total'] == Decimal('7670')

    def test_remove_first_line(self, session, quote, labour_line, metal_line, settings):
        first, _ = add_quote_item(session, quote.id, labour_line, settings=settings)
        add_quote_item(session, quote.id, metal_line, settings=settings)

        totals = remove_quote_item(session, quote.id, first.id)

        assert totals['subtotal'] == Decimal('5000')
        assert totals['markup_amount'] == Decimal('1500')
        assert totals['total'] == Decimal('6500')
        assert session.query(QuoteItem).filter_by(quote_id=quote.id).count() == 1

    def test_removing_every_line_zeroes_totals(self, session, quote, labour_line, settings):
        line, _ = add_quote_item(session, quote.id, labour_line, settings=settings)
        totals = remove_quote_item(session, quote.id, line.id)
        assert totals == {'subtotal': 0, 'markup_amount': 0, 'total': 0}


class TestAddLine:

    def test_labour_rate_from_provider(self, session, quote):
        provider = StaticSettingsProvider({'default_labour_rate': '400'})
        line, _ = add_quote_item(session, quote.id, {'description': 'Setting', 'labour_hours': '1.5'},
                                 settings=provider)
        assert line.labour_rate == Decimal('400')
        assert line.labour_total == Decimal('600')

    def test_labour_rate_from_stored_setting(self, session, quote):
        upsert_setting(session, 'default_labour_rate', '500')
        line, _ = add_quote_item(session, quote.id, {'description': 'Setting', 'labour_hours': 1})
        assert line.labour_rate == Decimal('500')

    def test_labour_rate_hard_fallback(self, session, quote):
        line, _ = add_quote_item(session, quote.id, {'description': 'Setting', 'labour_hours': 1})
        assert line.labour_rate == Decimal('350')

    def test_explicit_zero_rate_is_kept(self, session, quote, settings):
        line, _ = add_quote_item(session, quote.id, {'description': 'Free fitting', 'labour_hours': 1,
                                                      'labour_rate': 0}, settings=settings)
        assert line.labour_rate == 0
        assert line.line_total == 0

    def test_metal_price_defaults_to_zero(self, session, quote, settings):
        line, _ = add_quote_item(session, quote.id, {'description': 'Band', 'metal_type': 'gold',
                                                      'metal_grams': 4}, settings=settings)
        assert line.metal_price == 0
        assert line.metal_total == 0

    def test_accessories_and_quantity(self, session, quote, settings):
        line, totals = add_quote_item(session, quote.id, {
            'description': 'Pendant',
            'labour_hours': 0,
            'quantity': 2,
            'accessories': [{'name': 'Clasp', 'price': '120.50'}, {'name': 'Chain', 'price': 80}],
        }, settings=settings)

        assert line.extras_total == Decimal('200.50')
        assert line.unit_price == Decimal('200.50')
        assert line.line_total == Decimal('401.00')
        assert line.accessories == [{'name': 'Clasp', 'price': '120.50'}, {'name': 'Chain', 'price': '80'}]
        assert totals['subtotal'] == Decimal('401.00')

    def test_sort_order_continues_from_max(self, session, quote, labour_line, settings):
        lines = [add_quote_item(session, quote.id, labour_line, settings=settings)[0] for _ in range(3)]
        assert [line.sort_order for line in lines] == [1, 2, 3]

        remove_quote_item(session, quote.id, lines[2].id)
        remove_quote_item(session, quote.id, lines[0].id)
        line, _ = add_quote_item(session, quote.id, labour_line, settings=settings)
        assert line.sort_order == 3

    def test_catalog_reference(self, session, quote, settings):
        item = create_item(session, 'RNG-001', 'Solitaire ring')
        line, _ = add_quote_item(session, quote.id, {'description': 'Solitaire', 'item_id': item.id},
                                 settings=settings)
        assert line.item_id == item.id
        assert line.line_total == 0

    def test_unknown_catalog_item_rejected(self, session, quote, settings):
        with pytest.raises(ValidationError):
            add_quote_item(session, quote.id, {'description': 'Solitaire', 'item_id': 999}, settings=settings)
        assert session.query(QuoteItem).count() == 0

    def test_discount_applies_after_markup(self, session, quote, labour_line, settings):
        update_quote(session, quote.id, {'discount': '100'})
        _, totals = add_quote_item(session, quote.id, labour_line, settings=settings)
        assert totals['total'] == Decimal('1070')

    def test_markup_rounded_to_cents(self, session, customer, settings):
        quote = create_quote(session, {'customer_id': customer.id, 'markup_pct': '12.5'}, settings=settings)
        _, totals = add_quote_item(session, quote.id, {'description': 'Repair', 'labour_hours': 1,
                                                        'labour_rate': '33.33'}, settings=settings)
        # 33.33 * 12.5% = 4.16625
        assert totals['markup_amount'] == Decimal('4.17')
        assert totals['total'] == Decimal('37.50')


class TestAddLineValidation:

    @pytest.mark.parametrize('payload', [
        {'description': ''},
        {'description': '   '},
        {'description': 'Band', 'quantity': 0},
        {'description': 'Band', 'quantity': -1},
        {'description': 'Band', 'quantity': 1.5},
        {'description': 'Band', 'labour_hours': -1},
        {'description': 'Band', 'labour_rate': -50},
        {'description': 'Band', 'metal_grams': -2},
        {'description': 'Band', 'metal_price': -1},
        {'description': 'Band', 'labour_hours': 'two'},
        {'description': 'Band', 'accessories': [{'name': 'Clasp', 'price': -5}]},
        {'description': 'Band', 'accessories': 'clasp'},
    ])
    def test_rejected(self, session, quote, settings, payload):
        with pytest.raises(ValidationError):
            add_quote_item(session, quote.id, payload, settings=settings)

        assert session.query(QuoteItem).count() == 0
        assert session.get(Quote, quote.id).subtotal == 0

    def test_missing_quote(self, session, labour_line, settings):
        with pytest.raises(NotFoundError):
            add_quote_item(session, 4242, labour_line, settings=settings)
        assert session.query(QuoteItem).count() == 0

    def test_missing_quote_checked_before_payload(self, session, settings):
        with pytest.raises(NotFoundError):
            add_quote_item(session, 4242, {'description': ''}, settings=settings)


class TestUpdateLine:

    def test_partial_update_keeps_metal_price(self, session, quote, metal_line, settings):
        line, _ = add_quote_item(session, quote.id, metal_line, settings=settings)

        line, totals = update_quote_item(session, quote.id, line.id, {'quantity': 2})

        assert line.metal_price == Decimal('1000')
        assert line.metal_grams == Decimal('5')
        assert line.description == '18ct gold band'
        assert line.line_total == Decimal('10000')
        assert totals['subtotal'] == Decimal('10000')

    def test_override_metal_fields(self, session, quote, metal_line, settings):
        line, _ = add_quote_item(session, quote.id, metal_line, settings=settings)

        line, totals = update_quote_item(session, quote.id, line.id, {'metal_grams': '6', 'metal_price': 1100})

        assert line.metal_total == Decimal('6600')
        assert totals['subtotal'] == Decimal('6600')

    def test_labour_rate_not_reset_to_default(self, session, quote, labour_line, settings):
        line, _ = add_quote_item(session, quote.id, labour_line, settings=settings)
        line, _ = update_quote_item(session, quote.id, line.id, {'labour_hours': 3})

        assert line.labour_rate == Decimal('450')
        assert line.labour_total == Decimal('1350')

    def test_accessories_replaced(self, session, quote, settings):
        line, _ = add_quote_item(session, quote.id, {
            'description': 'Pendant', 'accessories': [{'name': 'Clasp', 'price': 100}]
        }, settings=settings)
        assert line.extras_total == Decimal('100')

        line, _ = update_quote_item(session, quote.id, line.id, {'description': 'Pendant v2'})
        assert line.extras_total == Decimal('100')

        line, _ = update_quote_item(session, quote.id, line.id, {'accessories': []})
        assert line.extras_total == 0
        assert line.line_total == 0

    def test_sibling_lines_included(self, session, quote, labour_line, metal_line, settings):
        labour, _ = add_quote_item(session, quote.id, labour_line, settings=settings)
        add_quote_item(session, quote.id, metal_line, settings=settings)

        _, totals = update_quote_item(session, quote.id, labour.id, {'labour_hours': 1})

        assert totals['subtotal'] == Decimal('5450')

    def test_empty_description_rejected(self, session, quote, labour_line, settings):
        line, _ = add_quote_item(session, quote.id, labour_line, settings=settings)
        with pytest.raises(ValidationError):
            update_quote_item(session, quote.id, line.id, {'description': ''})

        assert session.get(QuoteItem, line.id).description == 'Ring sizing and polish'

    def test_line_under_other_quote_not_found(self, session, quote, customer, labour_line, settings):
        other = create_quote(session, {'customer_id': customer.id}, settings=settings)
        line, _ = add_quote_item(session, other.id, labour_line, settings=settings)

        with pytest.raises(NotFoundError):
            update_quote_item(session, quote.id, line.id, {'quantity': 3})
        with pytest.raises(NotFoundError):
            remove_quote_item(session, quote.id, line.id)

    def test_missing_line(self, session, quote):
        with pytest.raises(NotFoundError):
            update_quote_item(session, quote.id, 999, {'quantity': 3})


class TestTotalsInvariant:

    def test_subtotal_tracks_lines_through_mixed_operations(self, session, quote, labour_line, metal_line,
                                                             settings):
        first, _ = add_quote_item(session, quote.id, labour_line, settings=settings)
        second, _ = add_quote_item(session, quote.id, metal_line, settings=settings)
        add_quote_item(session, quote.id, {'description': 'Chain', 'accessories': [{'name': 'Chain', 'price': 250}],
                                           'quantity': 3}, settings=settings)
        update_quote_item(session, quote.id, second.id, {'metal_grams': '2.5'})
        remove_quote_item(session, quote.id, first.id)

        quote = session.get(Quote, quote.id)
        subtotal = _line_sum(session, quote.id)
        assert quote.subtotal == subtotal == Decimal('3250')
        assert quote.total == subtotal + quote.markup_amount - quote.discount
        assert quote.markup_amount == subtotal * Decimal('0.30')

    def test_recalculation_is_idempotent(self, session, quote, labour_line, metal_line, settings):
        add_quote_item(session, quote.id, labour_line, settings=settings)
        add_quote_item(session, quote.id, metal_line, settings=settings)

        first = recalculate_quote_totals(session, quote)
        second = recalculate_quote_totals(session, quote)
        session.commit()

        assert first == second

    def test_inputs_held_at_stored_precision(self, session, quote, settings):
        line, totals = add_quote_item(session, quote.id, {
            'description': 'Claw re-tip', 'labour_hours': '1.125', 'labour_rate': 450,
            'metal_grams': '0.4445', 'metal_price': '1000.005'
        }, settings=settings)

        assert line.labour_hours == Decimal('1.13')
        assert line.metal_grams == Decimal('0.445')
        assert line.metal_price == Decimal('1000.01')
        assert line.line_total == Decimal('508.50') + Decimal('445.00')
        before = totals['subtotal']

        line, totals = update_quote_item(session, quote.id, line.id, {'notes': 'Polish after re-tip'})

        assert line.line_total == Decimal('953.50')
        assert totals['subtotal'] == before

    def test_default_labour_rate_held_at_cents(self, session, quote):
        provider = StaticSettingsProvider({'default_labour_rate': '333.335'})
        line, _ = add_quote_item(session, quote.id, {'description': 'Setting', 'labour_hours': 1},
                                 settings=provider)
        assert line.labour_rate == Decimal('333.34')

    def test_line_edits_do_not_bump_version(self, session, quote, labour_line, settings):
        line, _ = add_quote_item(session, quote.id, labour_line, settings=settings)
        update_quote_item(session, quote.id, line.id, {'quantity': 2})
        remove_quote_item(session, quote.id, line.id)

        assert session.get(Quote, quote.id).version == 1
