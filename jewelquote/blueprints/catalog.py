"""Catalog blueprint: categories and the items quote lines may reference."""
from decimal import Decimal

from flask import Blueprint, request, jsonify

from jewelquote.database import get_session
from jewelquote.exceptions import ValidationError
from jewelquote.services.catalog_service import (
    list_categories,
    list_items,
    create_category,
    create_item,
    delete_category
)
from jewelquote.utils.number_format import parse_decimal, parse_int

ZERO = Decimal('0')

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api/catalog')


def _json_body() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@catalog_bp.route('/categories', methods=['GET'])
def categories():
    return jsonify([category.to_dict() for category in list_categories(get_session())])


@catalog_bp.route('/categories', methods=['POST'])
def create_category_route():
    category = create_category(get_session(), _json_body().get('name'))
    return jsonify(category.to_dict()), 201


@catalog_bp.route('/categories/<int:category_id>', methods=['DELETE'])
def delete_category_route(category_id):
    """Categories that still hold items answer 409."""
    delete_category(get_session(), category_id)
    return jsonify({'status': 'success', 'message': 'Category deleted'})


@catalog_bp.route('/items', methods=['GET'])
def items():
    found = list_items(
        get_session(),
        category_id=parse_int(request.args.get('category_id'), 'category_id'),
        search=request.args.get('search', '').strip() or None
    )
    return jsonify([item.to_dict() for item in found])


@catalog_bp.route('/items', methods=['POST'])
def create_item_route():
    data = _json_body()
    item = create_item(
        get_session(),
        data.get('sku'),
        data.get('name'),
        category_id=parse_int(data.get('category_id'), 'category_id'),
        base_price=parse_decimal(data.get('base_price'), 'base_price', default=ZERO, minimum=ZERO)
    )
    return jsonify(item.to_dict()), 201
