"""
EXPENSE ROUTES
==============
"""

from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from gym_billing.routes import json_body, number
from gym_billing.services import expense_service, ledger_service
from gym_billing.services.expense_service import expense_to_dict

expenses_bp = Blueprint('expenses', __name__, url_prefix='/expenses')


@expenses_bp.route('', methods=['GET'])
@login_required
def list_expenses():
    expenses = expense_service.list_expenses(
        current_user.id,
        category=request.args.get('category'),
        status=request.args.get('status'),
    )
    return jsonify({'data': [expense_to_dict(e) for e in expenses]})


@expenses_bp.route('', methods=['POST'])
@login_required
def create_expense():
    data = json_body()
    expense = expense_service.create_expense(
        current_user.id,
        title=data.get('title'),
        category=data.get('category'),
        amount=number(data, 'amount'),
        description=data.get('description'),
        expense_date=data.get('expense_date'),
    )
    return jsonify({
        'message': 'Expense recorded successfully',
        'data': expense_to_dict(expense),
    }), 201


@expenses_bp.route('/summary', methods=['GET'])
@login_required
def summary():
    return jsonify({'data': ledger_service.financial_summary(current_user.id)})


@expenses_bp.route('/<int:expense_id>', methods=['GET'])
@login_required
def view_expense(expense_id):
    expense = expense_service.get_expense(current_user.id, expense_id)
    return jsonify({'data': expense_to_dict(expense)})


@expenses_bp.route('/<int:expense_id>', methods=['PATCH'])
@login_required
def update_expense(expense_id):
    data = json_body()
    fields = {
        key: data[key] for key in expense_service.UPDATABLE_FIELDS
        if data.get(key) is not None
    }
    if 'amount' in fields:
        fields['amount'] = number(data, 'amount')
    expense = expense_service.update_expense(current_user.id, expense_id, **fields)
    return jsonify({
        'message': 'Expense updated successfully',
        'data': expense_to_dict(expense),
    })


@expenses_bp.route('/<int:expense_id>/payments', methods=['POST'])
@login_required
def pay_expense(expense_id):
    data = json_body()
    expense = expense_service.add_expense_payment(
        current_user.id, expense_id,
        amount=number(data, 'amount'),
        method=data.get('method'),
        notes=data.get('notes'),
    )
    return jsonify({
        'message': 'Expense payment added successfully',
        'data': expense_to_dict(expense),
    })


@expenses_bp.route('/<int:expense_id>', methods=['DELETE'])
@login_required
def delete_expense(expense_id):
    expense_service.delete_expense(current_user.id, expense_id)
    return jsonify({'message': 'Expense deleted successfully'})
