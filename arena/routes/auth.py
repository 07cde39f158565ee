import logging

from flask import Blueprint, request, jsonify
from sqlalchemy import or_

from ..auth import sign_token
from ..exceptions import ConflictError, InvalidArgumentError, UnauthorizedError
from ..models import db, User

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__)


@bp.route('/auth/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    mobile = data.get('mobile')
    password = data.get('password')
    email = (data.get('email') or '').strip() or None

    if not username or not mobile or not password:
        raise InvalidArgumentError('username, mobile, password required')

    clauses = [User.username == username, User.mobile == mobile]
    if email:
        clauses.append(User.email == email)
    if User.query.filter(or_(*clauses)).first():
        raise ConflictError('username/mobile/email already exists')

    user = User(name=data.get('name') or username, username=username, mobile=mobile, email=email)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    logger.info(f"Registered user {user.id} ({user.username})")
    return jsonify({'token': sign_token(user), 'user': user.to_dict(private=True)}), 201


@bp.route('/auth/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    mobile = data.get('mobile')
    password = data.get('password')

    if not mobile or not password:
        raise InvalidArgumentError('mobile, password required')

    user = User.query.filter_by(mobile=mobile).first()
    if not user or not user.check_password(password):
        raise UnauthorizedError('Invalid credentials')

    return jsonify({'token': sign_token(user), 'user': user.to_dict(private=True)})
