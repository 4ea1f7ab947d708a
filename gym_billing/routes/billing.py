"""
MEMBERSHIP & MEMBER ADD-ON ROUTES
=================================

Both resources share one set of handlers built per BillableKind.
All money logic lives in billing_service.
"""

from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from gym_billing.routes import json_body, number, integer_arg
from gym_billing.services import billing_service, ledger_service
from gym_billing.services.billing_service import UNSET, billable_to_dict
from gym_billing.services.kinds import MEMBERSHIP, MEMBER_ADDON
from gym_billing.services.ledger_service import payment_to_dict


def make_billing_blueprint(kind, name, url_prefix):
    bp = Blueprint(name, __name__, url_prefix=url_prefix)
    offering_key = kind.offering_fk

    # ============== LIST ==============
    @bp.route('', methods=['GET'])
    @login_required
    def list_entities():
        entities = billing_service.list_billables(
            kind, current_user.id,
            member_id=integer_arg('member_id'),
            status=request.args.get('status') or None,
        )
        return jsonify({'data': [billable_to_dict(e) for e in entities]})

    # ============== CREATE ==============
    @bp.route('', methods=['POST'])
    @login_required
    def create_entity():
        data = json_body()
        entity = billing_service.create_billable(
            kind, current_user.id,
            member_id=data.get('member_id'),
            offering_id=data.get(offering_key, data.get('offering_id')),
            start_date=data.get('start_date'),
            end_date=data.get('end_date'),
            paid=number(data, 'paid', 0),
            discount=number(data, 'discount', 0),
            method=data.get('method'),
            trainer_id=data.get('trainer_id'),
        )
        return jsonify({
            'message': f'{kind.label} created successfully',
            'data': billable_to_dict(entity),
        }), 201

    # ============== VIEW ==============
    @bp.route('/<int:entity_id>', methods=['GET'])
    @login_required
    def view_entity(entity_id):
        entity = billing_service.get_billable(kind, current_user.id, entity_id)
        return jsonify({'data': billable_to_dict(entity)})

    # ============== UPDATE ==============
    @bp.route('/<int:entity_id>', methods=['PATCH'])
    @login_required
    def update_entity(entity_id):
        data = json_body()
        entity = billing_service.update_billable(
            kind, current_user.id, entity_id,
            start_date=data.get('start_date'),
            end_date=data.get('end_date'),
            offering_id=data.get(offering_key, data.get('offering_id')),
            trainer_id=data['trainer_id'] if 'trainer_id' in data else UNSET,
        )
        return jsonify({
            'message': f'{kind.label} updated successfully',
            'data': billable_to_dict(entity),
        })

    # ============== ADD PAYMENT ==============
    @bp.route('/<int:entity_id>/payments', methods=['POST'])
    @login_required
    def pay_entity(entity_id):
        data = json_body()
        entity = billing_service.add_payment(
            kind, current_user.id, entity_id,
            amount=number(data, 'amount'),
            discount=number(data, 'discount', 0),
            method=data.get('method'),
            status_override=data.get('status'),
        )
        return jsonify({
            'message': 'Payment recorded',
            'data': billable_to_dict(entity),
        })

    # ============== REFUND ==============
    @bp.route('/<int:entity_id>/refund', methods=['POST'])
    @login_required
    def refund_entity(entity_id):
        data = json_body()
        entry, entity = billing_service.refund(
            kind, current_user.id, entity_id,
            amount=number(data, 'amount'),
            method=data.get('method'),
            reason=data.get('reason'),
        )
        return jsonify({
            'message': 'Refund processed successfully',
            'data': {
                'refund': payment_to_dict(entry),
                kind.name: billable_to_dict(entity),
            },
        })

    # ============== CANCEL ==============
    @bp.route('/<int:entity_id>/cancel', methods=['POST'])
    @login_required
    def cancel_entity(entity_id):
        data = json_body()
        entity = billing_service.cancel_billable(
            kind, current_user.id, entity_id,
            refund_paid=bool(data.get('refund_paid')),
            method=data.get('method'),
            reason=data.get('reason'),
        )
        return jsonify({
            'message': f'{kind.label} cancelled',
            'data': billable_to_dict(entity),
        })

    # ============== DELETE ==============
    @bp.route('/<int:entity_id>', methods=['DELETE'])
    @login_required
    def delete_entity(entity_id):
        billing_service.delete_billable(kind, current_user.id, entity_id)
        return jsonify({'message': f'{kind.label} deleted successfully'})

    # ============== AUDIT ==============
    @bp.route('/<int:entity_id>/reconcile', methods=['POST'])
    @login_required
    def reconcile_entity(entity_id):
        report = ledger_service.reconcile_billable(kind, current_user.id, entity_id)
        return jsonify({'data': report})

    return bp


memberships_bp = make_billing_blueprint(MEMBERSHIP, 'memberships', '/memberships')
member_addons_bp = make_billing_blueprint(MEMBER_ADDON, 'member_addons', '/member-addons')
