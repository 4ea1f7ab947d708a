"""
AUTHENTICATION ROUTES
=====================

Session login for tenants (gym owners). Every billing route uses
current_user.id as the tenant id.
"""

from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from gym_billing.extensions import db
from gym_billing.models import User
from gym_billing.routes import json_body, error_response

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def _user_to_dict(user):
    return {'id': user.id, 'name': user.name, 'email': user.email}


@auth_bp.route('/register', methods=['POST'])
def register():
    data = json_body()
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    # Validation
    if not name or not email or not password:
        return error_response('All fields are required!', 'VALIDATION_ERROR', 400)

    if len(password) < 6:
        return error_response('Password must be at least 6 characters!', 'VALIDATION_ERROR', 400)

    if User.query.filter_by(email=email).first():
        return error_response('Email already registered!', 'VALIDATION_ERROR', 400)

    user = User(name=name, email=email)
    user.set_password(password)

    db.session.add(user)
    db.session.commit()

    return jsonify(_user_to_dict(user)), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    user = User.query.filter_by(email=email).first()
    if user is None or not user.check_password(password):
        return error_response('Invalid email or password!', 'INVALID_CREDENTIALS', 401)

    login_user(user, remember=bool(data.get('remember')))
    return jsonify(_user_to_dict(user))


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out'})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(_user_to_dict(current_user))
