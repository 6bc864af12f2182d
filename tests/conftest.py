from decimal import Decimal
from types import SimpleNamespace

import pytest

from bakery import create_app
from bakery import orders
from bakery.auth import issue_token, register_user
from bakery.models import BakerTeam, Product, db

SHIPPING = {
    'fullName': 'Carla Customer',
    'email': 'carla@bakery.test',
    'phone': '555-0100',
    'address': '1 Flour Lane',
    'city': 'Springfield',
    'state': 'IL',
    'zipCode': '62701',
    'paymentMethod': 'card',
}

PATH_TO = {
    'processing': ['processing'],
    'quality_check': ['processing', 'quality_check'],
    'ready': ['processing', 'quality_check', 'ready'],
    'delivered': ['processing', 'quality_check', 'ready', 'delivered'],
}


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SECRET_KEY': 'test-secret',
        'CHAT_STREAM_TIMEOUT': 0,
        'CHAT_STREAM_POLL_INTERVAL': 0.01,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(name, role):
    return register_user(f'{name}@bakery.test', name, 'password123', name.title(), role=role)


@pytest.fixture
def users(app):
    # creation order fixes the ids: admin=1, customer=2, main baker=3
    admin = make_user('admin', 'admin')
    customer = make_user('carla', 'customer')
    main = make_user('marco', 'main_baker')
    junior = make_user('julia', 'junior_baker')
    other_main = make_user('olga', 'main_baker')
    outsider = make_user('oscar', 'customer')
    db.session.add(BakerTeam(main_baker_id=main.id, junior_baker_id=junior.id))
    db.session.commit()
    return SimpleNamespace(admin=admin, customer=customer, main=main, junior=junior,
                           other_main=other_main, outsider=outsider)


@pytest.fixture
def products(users):
    bread = Product(main_baker_id=users.main.id, name='Sourdough', category='Breads', price=Decimal('10.00'))
    cookie = Product(main_baker_id=users.main.id, name='Cookie', category='Cookies', price=Decimal('5.00'))
    tart = Product(main_baker_id=users.other_main.id, name='Lemon Tart', category='Pastries',
                   price=Decimal('7.50'))
    db.session.add_all([bread, cookie, tart])
    db.session.commit()
    return SimpleNamespace(bread=bread, cookie=cookie, tart=tart)


@pytest.fixture
def auth_headers():
    def make(user):
        return {'Authorization': f'Bearer {issue_token(user)}'}
    return make


@pytest.fixture
def shipping():
    return dict(SHIPPING)


@pytest.fixture
def order(users, products):
    """A pending $25 order routed to the main baker."""
    return orders.create_order(users.customer, [
        {'productId': products.bread.id, 'quantity': 2},
        {'productId': products.cookie.id, 'quantity': 1},
    ], dict(SHIPPING))


@pytest.fixture
def advance_to(users):
    def advance(order, status, actor=None):
        for step in PATH_TO[status]:
            orders.advance_status(actor or users.main, order.id, step)
        return order
    return advance
