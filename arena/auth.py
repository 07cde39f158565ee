import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import current_app
from flask_login import LoginManager
from jose import JWTError, jwt

from .exceptions import UnauthorizedError
from .models import db, User

logger = logging.getLogger(__name__)

login_manager = LoginManager()


def sign_token(user: User) -> str:
    expires = datetime.now(timezone.utc) + timedelta(days=current_app.config['JWT_EXPIRE_DAYS'])
    return jwt.encode(
        {'userId': user.id, 'exp': expires},
        current_app.config['JWT_SECRET'],
        algorithm=current_app.config['JWT_ALGORITHM'],
    )


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=[current_app.config['JWT_ALGORITHM']],
        )
    except JWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        return None


@login_manager.request_loader
def load_user_from_request(request) -> Optional[User]:
    auth = request.headers.get('Authorization', '')
    if not auth.startswith('Bearer '):
        return None
    payload = decode_token(auth[7:])
    if not payload or 'userId' not in payload:
        return None
    return db.session.get(User, payload['userId'])


@login_manager.unauthorized_handler
def unauthorized():
    raise UnauthorizedError('Authentication required')
