"""
PAYMENT HISTORY ROUTES
======================

Read-only view over the ledger.
"""

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required, current_user

from gym_billing.routes import integer_arg
from gym_billing.services import ledger_service

payments_bp = Blueprint('payments', __name__, url_prefix='/payments')


@payments_bp.route('', methods=['GET'])
@login_required
def history():
    result = ledger_service.payment_history(
        current_user.id,
        member_id=integer_arg('member_id'),
        start_date=request.args.get('start_date') or None,
        end_date=request.args.get('end_date') or None,
        method=request.args.get('method') or None,
        page=integer_arg('page', 1),
        limit=integer_arg('limit', current_app.config.get('PAYMENTS_PER_PAGE', 10)),
    )
    for row in result['data']:
        row['payment_date'] = row['payment_date'].isoformat()
    return jsonify(result)


@payments_bp.route('/summary', methods=['GET'])
@login_required
def summary():
    return jsonify({'data': ledger_service.financial_summary(current_user.id)})
