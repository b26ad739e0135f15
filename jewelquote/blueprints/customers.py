"""Customers blueprint: JSON API for the customer directory."""
from flask import Blueprint, request, jsonify

from jewelquote.database import get_session
from jewelquote.exceptions import ValidationError
from jewelquote.services.customer_service import (
    list_customers,
    get_customer,
    create_customer,
    update_customer,
    delete_customer
)

customers_bp = Blueprint('customers', __name__, url_prefix='/api/customers')


def _json_body() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@customers_bp.route('', methods=['GET'])
def list_customers_route():
    """List customers, optionally filtered by ?search= on name, company or email."""
    customers = list_customers(get_session(), search=request.args.get('search', '').strip() or None)
    return jsonify([customer.to_dict() for customer in customers])


@customers_bp.route('/<int:customer_id>', methods=['GET'])
def view_customer(customer_id):
    return jsonify(get_customer(get_session(), customer_id).to_dict())


@customers_bp.route('', methods=['POST'])
def create_customer_route():
    customer = create_customer(get_session(), _json_body())
    return jsonify(customer.to_dict()), 201


@customers_bp.route('/<int:customer_id>', methods=['PUT'])
def update_customer_route(customer_id):
    customer = update_customer(get_session(), customer_id, _json_body())
    return jsonify(customer.to_dict())


@customers_bp.route('/<int:customer_id>', methods=['DELETE'])
def delete_customer_route(customer_id):
    """Customers referenced by any quote answer 409."""
    delete_customer(get_session(), customer_id)
    return jsonify({'status': 'success', 'message': 'Customer deleted'})
