from flask import Blueprint, request, jsonify, session
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from app import limiter
from app.models import User

auth_bp = Blueprint('auth', __name__, url_prefix='/api')


@auth_bp.route('/csrf-token')
def csrf_token():
    """Hand JSON clients a token to send back in the X-CSRFToken header."""
    return jsonify(success=True, csrf_token=generate_csrf())


@auth_bp.route('/auth/login', methods=['POST'])
@limiter.limit("5 per minute", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''

    user = User.query.filter_by(username=username).first()
    if user and user.check_password(password):
        login_user(user)
        return jsonify(success=True, user_id=user.id, username=user.username)

    return jsonify(success=False, error='invalid_credentials',
                   message='Invalid username or password.'), 401


@auth_bp.route('/auth/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    session.clear()
    return jsonify(success=True, message='You have been logged out.')


@auth_bp.route('/auth/me')
@login_required
def me():
    return jsonify(success=True, user_id=current_user.id, username=current_user.username)
