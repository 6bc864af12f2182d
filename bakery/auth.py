# bakery/auth.py
import re
from functools import wraps

from flask import current_app, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthenticationError, AuthorizationError, ConflictError, ValidationError
from .models import User, db
from .validation import text_or_empty

EMAIL_REGEX = re.compile(r"[^@]+@[^@]+\.[^@]+")
MIN_PASSWORD_LENGTH = 8
TOKEN_SALT = 'bakery-auth'


def register_user(email, username, password, full_name, role='customer'):
    email = text_or_empty(email, 'email').strip().lower()
    username = text_or_empty(username, 'username').strip()
    full_name = text_or_empty(full_name, 'fullName').strip()
    password = text_or_empty(password, 'password')
    if not email or not username or not password or not full_name:
        raise ValidationError('email, username, password and fullName are required')
    if not EMAIL_REGEX.match(email):
        raise ValidationError('Invalid email format')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    if User.query.filter_by(email=email).first():
        raise ConflictError('Email already registered')
    if User.query.filter_by(username=username).first():
        raise ConflictError('Username already taken')
    user = User(email=email, username=username, full_name=full_name,
                password_hash=generate_password_hash(password), role=role)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info('Registered user %s with role %s', user.id, user.role)
    return user


def authenticate(email, password):
    email = text_or_empty(email, 'email').strip().lower()
    password = text_or_empty(password, 'password')
    if not email or not password:
        raise ValidationError('Email and password are required')
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        current_app.logger.warning('Failed login for %s', email)
        raise AuthenticationError('Invalid credentials')
    return user


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(user):
    return _serializer().dumps({'userId': user.id})


def load_principal(token):
    """Resolve a bearer token to the user it was issued for."""
    if not token:
        raise AuthenticationError('No token provided')
    try:
        payload = _serializer().loads(token, max_age=current_app.config['TOKEN_MAX_AGE'])
    except SignatureExpired:
        raise AuthenticationError('Token expired')
    except BadSignature:
        raise AuthenticationError('Invalid token')
    user = db.session.get(User, payload.get('userId'))
    if user is None:
        raise AuthenticationError('Invalid token')
    return user


def _bearer_token():
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header.split(' ', 1)[1].strip()
    # EventSource cannot set headers, so the chat stream passes the token as a query arg
    return request.args.get('token')


def login_required(f):
    @wraps(f)
    def wrapped(*args, **kwargs):
        principal = load_principal(_bearer_token())
        return f(*args, principal=principal, **kwargs)
    return wrapped


def role_required(*roles):
    def decorator(f):
        @wraps(f)
        @login_required
        def wrapped(*args, principal, **kwargs):
            if principal.role not in roles:
                raise AuthorizationError('Not authorized')
            return f(*args, principal=principal, **kwargs)
        return wrapped
    return decorator
