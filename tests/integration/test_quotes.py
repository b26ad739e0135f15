"""
Integration tests for the quote aggregate: numbering, edits, status and copies.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from jewelquote.exceptions import BusinessLogicError, ConflictError, NotFoundError, ValidationError
from jewelquote.models import Quote, QuoteItem, QuoteVersion
from jewelquote.services import quote_service
from jewelquote.services.customer_service import create_customer
from jewelquote.services.quote_item_service import add_quote_item
from jewelquote.services.quote_service import (
    create_quote, delete_quote, duplicate_quote, generate_quote_number, get_quote, list_quotes,
    update_quote, update_quote_status
)
from jewelquote.services.quote_version_service import SnapshotOutcome
from jewelquote.services.settings_service import StaticSettingsProvider

YEAR = datetime.now().year


class TestCreateQuote:

    def test_defaults(self, quote):
        assert quote.quote_number == f'Q{YEAR}-0001'
        assert quote.status == 'DRAFT'
        assert quote.version == 1
        assert quote.markup_pct == Decimal('30')
        assert quote.valid_until is None

    def test_default_markup_from_settings(self, session, customer):
        provider = StaticSettingsProvider({'default_markup_pct': '35'})
        quote = create_quote(session, {'customer_id': customer.id}, settings=provider)
        assert quote.markup_pct == Decimal('35')

    def test_default_markup_hard_fallback(self, session, customer):
        quote = create_quote(session, {'customer_id': customer.id})
        assert quote.markup_pct == Decimal('30')

    def test_caller_supplied_totals(self, session, customer, settings):
        quote = create_quote(session, {
            'customer_id': customer.id,
            'subtotal': '3980',
            'markup_amount': '995',
            'total': '4975',
            'sku_code': 'RNG-PLAT-01',
            'valid_until': '2026-11-15',
            'quote_data': {'labour': {'hours': 3, 'rate': 400}, 'markup_percent': 25},
        }, settings=settings)

        assert quote.subtotal == Decimal('3980')
        assert quote.total == Decimal('4975')
        assert quote.sku_code == 'RNG-PLAT-01'
        assert quote.valid_until == date(2026, 11, 15)
        assert quote.quote_data['labour'] == {'hours': '3', 'rate': '400'}
        assert quote.quote_data['material']['loss_factor'] == '1'

    def test_customer_required(self, session, settings):
        with pytest.raises(ValidationError) as exc:
            create_quote(session, {}, settings=settings)
        assert exc.value.field == 'customer_id'

    def test_unknown_customer(self, session, settings):
        with pytest.raises(ValidationError):
            create_quote(session, {'customer_id': 12345}, settings=settings)
        assert session.query(Quote).count() == 0

    def test_invalid_loss_factor(self, session, customer, settings):
        with pytest.raises(ValidationError):
            create_quote(session, {'customer_id': customer.id,
                                   'quote_data': {'material': {'loss_factor': '0.5'}}}, settings=settings)
        assert session.query(Quote).count() == 0

    def test_invalid_date(self, session, customer, settings):
        with pytest.raises(ValidationError):
            create_quote(session, {'customer_id': customer.id, 'valid_until': 'next week'}, settings=settings)


class TestQuoteNumbering:

    def test_first_number(self, session):
        assert generate_quote_number(session) == f'Q{YEAR}-0001'
        assert generate_quote_number(session, year=2030) == 'Q2030-0001'

    def test_sequence_continues_after_delete(self, session, customer, settings):
        first = create_quote(session, {'customer_id': customer.id}, settings=settings)
        second = create_quote(session, {'customer_id': customer.id}, settings=settings)
        assert second.quote_number == f'Q{YEAR}-0002'

        delete_quote(session, first.id)
        third = create_quote(session, {'customer_id': customer.id}, settings=settings)
        assert third.quote_number == f'Q{YEAR}-0003'

    def test_other_years_ignored(self, session, customer):
        session.add(Quote(quote_number='Q2019-0042', customer_id=customer.id))
        session.commit()
        assert generate_quote_number(session, year=2019) == 'Q2019-0043'
        assert generate_quote_number(session, year=2020) == 'Q2020-0001'

    def test_retry_when_number_taken(self, session, quote, customer, settings, monkeypatch, caplog):
        issued = iter([quote.quote_number, f'Q{YEAR}-0002'])
        monkeypatch.setattr(quote_service, 'generate_quote_number', lambda session: next(issued))

        second = create_quote(session, {'customer_id': customer.id}, settings=settings)

        assert second.quote_number == f'Q{YEAR}-0002'
        assert session.query(Quote).count() == 2
        assert 'already taken' in caplog.text

    def test_gives_up_after_max_retries(self, session, quote, customer, settings, monkeypatch):
        monkeypatch.setattr(quote_service, 'generate_quote_number', lambda session: quote.quote_number)

        with pytest.raises(ConflictError):
            create_quote(session, {'customer_id': customer.id}, settings=settings, max_retries=3)
        assert session.query(Quote).count() == 1


class TestUpdateQuote:

    def test_markup_change_keeps_totals(self, session, quote, labour_line, settings):
        add_quote_item(session, quote.id, labour_line, settings=settings)

        updated, outcome = update_quote(session, quote.id, {'markup_pct': 40})

        assert outcome is SnapshotOutcome.PERSISTED
        assert updated.version == 2
        assert updated.markup_pct == Decimal('40')
        # a direct edit does not recompute totals
        assert updated.subtotal == Decimal('900')
        assert updated.markup_amount == Decimal('270')
        assert updated.total == Decimal('1170')

        version = session.query(QuoteVersion).filter_by(quote_id=quote.id).one()
        assert version.version_num == 1
        assert version.change_notes == 'Quote updated'
        assert version.snapshot_json['markup_pct'] == '30.00'
        assert version.snapshot_json['total'] == '1170.00'

    def test_next_line_edit_recomputes_with_new_markup(self, session, quote, labour_line, metal_line, settings):
        add_quote_item(session, quote.id, labour_line, settings=settings)
        update_quote(session, quote.id, {'markup_pct': 40})

        _, totals = add_quote_item(session, quote.id, metal_line, settings=settings)

        assert totals['markup_amount'] == Decimal('2360')
        assert totals['total'] == Decimal('8260')

    def test_direct_totals_overwritten_by_line_edit(self, session, quote, labour_line, settings):
        update_quote(session, quote.id, {'subtotal': '5000', 'markup_amount': '1500', 'total': '6500'})
        assert session.get(Quote, quote.id).total == Decimal('6500')

        _, totals = add_quote_item(session, quote.id, labour_line, settings=settings)

        assert totals['subtotal'] == Decimal('900')
        assert totals['total'] == Decimal('1170')

    def test_only_supplied_fields_change(self, session, quote):
        update_quote(session, quote.id, {'notes': 'Engrave inside band', 'valid_until': '2026-12-01'})
        updated, _ = update_quote(session, quote.id, {'discount': '25', 'change_notes': 'Loyalty discount'})

        assert updated.notes == 'Engrave inside band'
        assert updated.valid_until == date(2026, 12, 1)
        assert updated.discount == Decimal('25')
        assert updated.version == 3
        assert session.query(QuoteVersion).filter_by(quote_id=quote.id, version_num=2).one().change_notes == \
            'Loyalty discount'

    def test_clear_valid_until(self, session, quote):
        update_quote(session, quote.id, {'valid_until': '2026-12-01'})
        updated, _ = update_quote(session, quote.id, {'valid_until': None})
        assert updated.valid_until is None

    def test_version_strictly_increases(self, session, quote):
        versions = [update_quote(session, quote.id, {'notes': f'Revision {n}'})[0].version for n in range(4)]
        assert versions == [2, 3, 4, 5]
        assert [v.version_num for v in session.query(QuoteVersion).order_by(QuoteVersion.version_num)] == [1, 2, 3, 4]

    def test_invalid_input_leaves_no_trace(self, session, quote):
        with pytest.raises(ValidationError):
            update_quote(session, quote.id, {'markup_pct': 'forty'})

        assert session.get(Quote, quote.id).version == 1
        assert session.query(QuoteVersion).count() == 0

    def test_unknown_customer_rejected(self, session, quote):
        with pytest.raises(ValidationError):
            update_quote(session, quote.id, {'customer_id': 999})

    def test_reassign_customer(self, session, quote):
        other = create_customer(session, {'name': 'Pieter van Wyk'})
        updated, _ = update_quote(session, quote.id, {'customer_id': other.id})
        assert updated.customer_id == other.id

    def test_missing_quote(self, session):
        with pytest.raises(NotFoundError):
            update_quote(session, 999, {'notes': 'x'})


class TestQuoteStatus:

    def test_any_transition_allowed_by_default(self, session, quote):
        assert update_quote_status(session, quote.id, 'accepted').status == 'ACCEPTED'
        assert update_quote_status(session, quote.id, 'DRAFT').status == 'DRAFT'
        assert update_quote_status(session, quote.id, 'CONVERTED').status == 'CONVERTED'

    def test_unknown_status(self, session, quote):
        with pytest.raises(ValidationError):
            update_quote_status(session, quote.id, 'ARCHIVED')
        assert session.get(Quote, quote.id).status == 'DRAFT'

    def test_enforced_transitions(self, session, quote):
        with pytest.raises(BusinessLogicError):
            update_quote_status(session, quote.id, 'ACCEPTED', enforce_transitions=True)

        update_quote_status(session, quote.id, 'SENT', enforce_transitions=True)
        update_quote_status(session, quote.id, 'ACCEPTED', enforce_transitions=True)

        with pytest.raises(BusinessLogicError):
            update_quote_status(session, quote.id, 'DRAFT', enforce_transitions=True)
        assert session.get(Quote, quote.id).status == 'ACCEPTED'

    def test_enforced_transitions_on_update(self, session, quote):
        with pytest.raises(BusinessLogicError):
            update_quote(session, quote.id, {'status': 'REJECTED'}, enforce_transitions=True)
        assert session.query(QuoteVersion).count() == 0

    def test_status_change_is_not_versioned(self, session, quote):
        update_quote_status(session, quote.id, 'SENT')
        assert session.get(Quote, quote.id).version == 1
        assert session.query(QuoteVersion).count() == 0

    def test_expired_is_display_only(self, session, quote):
        update_quote(session, quote.id, {'valid_until': '2020-01-31'})
        quote = update_quote_status(session, quote.id, 'SENT')

        assert quote.status == 'SENT'
        assert quote.display_status == 'EXPIRED'


class TestDuplicateQuote:

    def test_copies_totals_and_lines(self, session, quote, labour_line, metal_line, settings):
        add_quote_item(session, quote.id, labour_line, settings=settings)
        add_quote_item(session, quote.id, dict(metal_line, accessories=[{'name': 'Box', 'price': 45}],
                                               notes='Customer supplies stone'), settings=settings)
        update_quote(session, quote.id, {'notes': 'Wedding band', 'valid_until': '2026-12-01', 'discount': '10'})
        update_quote_status(session, quote.id, 'SENT')

        copy = duplicate_quote(session, quote.id)

        assert copy.id != quote.id
        assert copy.quote_number == f'Q{YEAR}-0002'
        assert copy.status == 'DRAFT'
        assert copy.valid_until is None
        assert copy.version == 1
        assert copy.notes == f'Copy of {quote.quote_number}: Wedding band'
        for field in ('subtotal', 'markup_pct', 'markup_amount', 'discount', 'total'):
            assert getattr(copy, field) == getattr(quote, field)

        ignored = {'id', 'quote_id', 'created_at'}
        columns = [c.key for c in QuoteItem.__table__.columns if c.key not in ignored]

        def lines(quote_id):
            rows = session.query(QuoteItem).filter_by(quote_id=quote_id).order_by(QuoteItem.sort_order)
            return [{name: getattr(row, name) for name in columns} for row in rows]

        assert lines(copy.id) == lines(quote.id)
        assert len(lines(copy.id)) == 2

    def test_history_not_copied(self, session, quote):
        update_quote(session, quote.id, {'notes': 'first'})
        copy = duplicate_quote(session, quote.id)
        assert session.query(QuoteVersion).filter_by(quote_id=copy.id).count() == 0

    def test_without_notes(self, session, quote):
        copy = duplicate_quote(session, quote.id)
        assert copy.notes == f'Copy of {quote.quote_number}'

    def test_missing_source(self, session):
        with pytest.raises(NotFoundError):
            duplicate_quote(session, 999)


class TestDeleteQuote:

    def test_removes_lines_and_history(self, session, quote, labour_line, settings):
        add_quote_item(session, quote.id, labour_line, settings=settings)
        update_quote(session, quote.id, {'notes': 'to be removed'})

        delete_quote(session, quote.id)

        assert session.query(Quote).count() == 0
        assert session.query(QuoteItem).count() == 0
        assert session.query(QuoteVersion).count() == 0
        with pytest.raises(NotFoundError):
            get_quote(session, quote.id)


class TestListQuotes:

    @pytest.fixture
    def quotes(self, session, customer, settings):
        other = create_customer(session, {'name': 'Pieter van Wyk'})
        created = [
            create_quote(session, {'customer_id': customer.id, 'notes': 'Engagement ring', 'total': '15000'},
                         settings=settings),
            create_quote(session, {'customer_id': customer.id, 'total': '800'}, settings=settings),
            create_quote(session, {'customer_id': other.id, 'notes': 'Signet ring', 'total': '4200'},
                         settings=settings),
        ]
        update_quote_status(session, created[1].id, 'SENT')
        return created, other

    def test_search_customer_name_and_notes(self, session, quotes):
        results, total = list_quotes(session, search='pieter')
        assert total == 1

        results, total = list_quotes(session, search='RING')
        assert total == 2

    def test_filters(self, session, quotes):
        created, other = quotes
        _, total = list_quotes(session, status='sent')
        assert total == 1
        results, total = list_quotes(session, customer_id=other.id)
        assert [q.id for q in results] == [created[2].id]

    def test_pagination_and_sort(self, session, quotes):
        results, total = list_quotes(session, page=1, limit=2, sort_by='total', sort_order='asc')
        assert total == 3
        assert [q.total for q in results] == [Decimal('800'), Decimal('4200')]

        results, _ = list_quotes(session, page=2, limit=2, sort_by='total', sort_order='asc')
        assert [q.total for q in results] == [Decimal('15000')]

    def test_unknown_sort_field_falls_back(self, session, quotes):
        results, total = list_quotes(session, sort_by='nope')
        assert total == 3
        assert len(results) == 3
