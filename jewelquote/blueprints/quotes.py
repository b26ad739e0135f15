"""Quotes blueprint: JSON API for quotes, their lines and version history."""
from flask import Blueprint, request, send_file, current_app, jsonify

from jewelquote.database import get_session
from jewelquote.exceptions import ValidationError
from jewelquote.services.pricing_service import CostBreakdown, calculate_pricing, vat_rate_from_pct
from jewelquote.services.pdf_service import generate_quote_pdf
from jewelquote.services.quote_item_service import add_quote_item, update_quote_item, remove_quote_item
from jewelquote.services.quote_service import (
    get_quote,
    list_quotes,
    create_quote,
    update_quote,
    update_quote_status,
    delete_quote,
    duplicate_quote,
    restore_quote_version
)
from jewelquote.services.quote_version_service import list_versions, get_version
from jewelquote.utils.formatters import decimal_str
from jewelquote.utils.number_format import parse_int

quotes_bp = Blueprint('quotes', __name__, url_prefix='/api/quotes')


def _json_body() -> dict:
    """Request body as a dict; anything else is a validation error."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _totals_dict(totals) -> dict:
    return {key: decimal_str(value) for key, value in totals.items()}


def _enforce_transitions() -> bool:
    return bool(current_app.config.get('QUOTE_ENFORCE_STATUS_TRANSITIONS', False))


def _max_retries() -> int:
    return int(current_app.config.get('QUOTE_NUMBER_MAX_RETRIES', 5))


def _history_limit() -> int:
    return int(current_app.config.get('QUOTE_VERSION_HISTORY_LIMIT', 10))


@quotes_bp.route('', methods=['GET'])
def list_quotes_route():
    """Paginated list with search, status / customer filters and sorting."""
    page = parse_int(request.args.get('page'), 'page', default=1, minimum=1)
    limit = parse_int(request.args.get('limit'), 'limit', default=20, minimum=1)

    quotes, total = list_quotes(
        get_session(),
        page=page,
        limit=limit,
        search=request.args.get('search', '').strip() or None,
        status=request.args.get('status', '').strip() or None,
        customer_id=parse_int(request.args.get('customer_id'), 'customer_id'),
        sort_by=request.args.get('sort_by', 'created_at'),
        sort_order=request.args.get('sort_order', 'desc')
    )

    limit = min(limit, 100)
    return jsonify({
        'quotes': [quote.to_dict() for quote in quotes],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': (total + limit - 1) // limit
        }
    })


@quotes_bp.route('/<int:quote_id>', methods=['GET'])
def view_quote(quote_id):
    """Quote with customer, ordered lines and the most recent versions."""
    quote = get_quote(get_session(), quote_id)
    return jsonify(quote.to_dict(include_items=True, include_versions=True, version_limit=_history_limit()))


@quotes_bp.route('', methods=['POST'])
def create_quote_route():
    quote = create_quote(get_session(), _json_body(), max_retries=_max_retries())
    return jsonify(quote.to_dict(include_items=True)), 201


@quotes_bp.route('/<int:quote_id>', methods=['PUT'])
def update_quote_route(quote_id):
    """Direct edit; the previous state is kept as a version."""
    quote, outcome = update_quote(
        get_session(), quote_id, _json_body(), enforce_transitions=_enforce_transitions()
    )
    return jsonify({
        'quote': quote.to_dict(include_items=True),
        'snapshot': outcome.value
    })


@quotes_bp.route('/<int:quote_id>', methods=['DELETE'])
def delete_quote_route(quote_id):
    delete_quote(get_session(), quote_id)
    return jsonify({'status': 'success', 'message': 'Quote deleted'})


@quotes_bp.route('/<int:quote_id>/status', methods=['PATCH'])
def update_status(quote_id):
    data = _json_body()
    if not data.get('status'):
        raise ValidationError('Status is required', field='status')

    quote = update_quote_status(
        get_session(), quote_id, data['status'], enforce_transitions=_enforce_transitions()
    )
    return jsonify(quote.to_dict())


@quotes_bp.route('/<int:quote_id>/items', methods=['POST'])
def add_item(quote_id):
    line, totals = add_quote_item(get_session(), quote_id, _json_body())
    return jsonify({'item': line.to_dict(), 'quote_totals': _totals_dict(totals)}), 201


@quotes_bp.route('/<int:quote_id>/items/<int:item_id>', methods=['PUT'])
def update_item(quote_id, item_id):
    line, totals = update_quote_item(get_session(), quote_id, item_id, _json_body())
    return jsonify({'item': line.to_dict(), 'quote_totals': _totals_dict(totals)})


@quotes_bp.route('/<int:quote_id>/items/<int:item_id>', methods=['DELETE'])
def remove_item(quote_id, item_id):
    totals = remove_quote_item(get_session(), quote_id, item_id)
    return jsonify({'status': 'success', 'quote_totals': _totals_dict(totals)})


@quotes_bp.route('/<int:quote_id>/versions', methods=['GET'])
def versions(quote_id):
    """Version history, newest first. ``?limit=0`` returns all of it."""
    limit = parse_int(request.args.get('limit'), 'limit', default=_history_limit(), minimum=0)
    history = list_versions(get_session(), quote_id, limit=limit or None)
    return jsonify([version.to_dict() for version in history])


@quotes_bp.route('/<int:quote_id>/versions/<int:version_num>', methods=['GET'])
def view_version(quote_id, version_num):
    return jsonify(get_version(get_session(), quote_id, version_num).to_dict())


@quotes_bp.route('/<int:quote_id>/restore/<int:version_num>', methods=['POST'])
def restore_version(quote_id, version_num):
    quote, outcome = restore_quote_version(get_session(), quote_id, version_num)
    return jsonify({
        'quote': quote.to_dict(include_items=True),
        'snapshot': outcome.value
    })


@quotes_bp.route('/<int:quote_id>/duplicate', methods=['POST'])
def duplicate(quote_id):
    quote = duplicate_quote(get_session(), quote_id, max_retries=_max_retries())
    return jsonify(quote.to_dict(include_items=True)), 201


@quotes_bp.route('/<int:quote_id>/pdf', methods=['GET'])
def download_pdf(quote_id):
    """Render the quote as a PDF attachment."""
    session = get_session()
    quote = get_quote(session, quote_id)
    pdf_buffer = generate_quote_pdf(session, quote_id)

    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"quote_{quote.quote_number}.pdf"
    )


@quotes_bp.route('/calculate', methods=['POST'])
def calculate():
    """Price a cost breakdown without saving anything."""
    breakdown = CostBreakdown.from_dict(_json_body())
    vat_rate = vat_rate_from_pct(current_app.config.get('VAT_RATE_PCT', 15))
    return jsonify(calculate_pricing(breakdown, vat_rate=vat_rate).to_dict())
