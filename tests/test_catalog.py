from decimal import Decimal

import pytest

from bakery import catalog, orders
from bakery.catalog import price_custom_cake
from bakery.errors import AuthorizationError, ValidationError
from bakery.models import OrderItem, Product, db


@pytest.mark.parametrize('pounds,layers,expected', [
    ('1', '2layer', '30.00'),
    ('0.5', '2layer', '30.00'),
    ('2', '2layer', '48.00'),
    ('3', '3layer', '85.80'),
    ('1.5', '4layer', '62.40'),
])
def test_price_custom_cake(pounds, layers, expected):
    assert price_custom_cake(Decimal(pounds), layers) == Decimal(expected)


def test_price_custom_cake_limits():
    with pytest.raises(ValidationError):
        price_custom_cake(Decimal('0.25'), '2layer')
    with pytest.raises(ValidationError):
        price_custom_cake(Decimal('2'), '9layer')


def test_list_products_by_category(client, products):
    resp = client.get('/api/products?category=Breads')
    assert resp.status_code == 200
    assert [p['name'] for p in resp.get_json()] == ['Sourdough']
    assert len(client.get('/api/products').get_json()) == 3


def test_product_detail(client, products):
    resp = client.get(f'/api/products/{products.cookie.id}')
    assert resp.get_json()['price'] == 5.0
    assert client.get('/api/products/999').status_code == 404


def test_main_baker_lists_product(client, users, auth_headers):
    resp = client.post('/api/products', headers=auth_headers(users.main), json={
        'name': 'Baguette', 'price': '3.50', 'category': 'Breads', 'isNew': True,
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['mainBakerId'] == users.main.id
    assert body['price'] == 3.5
    assert body['isNew'] is True


def test_product_validation(client, users, auth_headers):
    headers = auth_headers(users.main)
    assert client.post('/api/products', headers=headers, json={'price': 3}).status_code == 400
    assert client.post('/api/products', headers=headers, json={'name': 'X', 'price': 'abc'}).status_code == 400
    assert client.post('/api/products', headers=headers, json={'name': 'X', 'price': -1}).status_code == 400


def test_unknown_category_falls_back_to_other(client, users, auth_headers):
    resp = client.post('/api/products', headers=auth_headers(users.main),
                       json={'name': 'Mystery', 'price': 1, 'category': 'Gadgets'})
    assert resp.get_json()['category'] == 'Other'


def test_only_main_bakers_list_products(client, users, auth_headers):
    resp = client.post('/api/products', headers=auth_headers(users.customer), json={'name': 'X', 'price': 1})
    assert resp.status_code == 403


def test_custom_cake_is_priced_on_the_server(client, users, auth_headers):
    resp = client.post('/api/custom-cakes', headers=auth_headers(users.customer), json={
        'pounds': 2, 'layers': '2layer', 'totalPrice': 1, 'mainBakerId': users.main.id,
        'message': 'Happy birthday',
    })
    assert resp.status_code == 201
    assert resp.get_json()['totalPrice'] == 48.0

    mine = client.get('/api/custom-cakes', headers=auth_headers(users.customer)).get_json()
    assert [c['id'] for c in mine] == [resp.get_json()['id']]


def test_custom_cake_main_baker_must_be_main_baker(client, users, auth_headers):
    resp = client.post('/api/custom-cakes', headers=auth_headers(users.customer),
                       json={'pounds': 1, 'mainBakerId': users.junior.id})
    assert resp.status_code == 400


@pytest.mark.parametrize('payload', [
    {'name': 42, 'price': 3},
    {'name': 'Scone', 'price': 3, 'description': {'html': '<b>'}},
    {'name': 'Scone', 'price': 3, 'imageUrl': 7},
    {'name': 'Scone', 'price': 3, 'inStock': 'yes'},
    {'name': 'Scone', 'price': '1e30'},
    {'name': 'Scone', 'price': True},
])
def test_product_rejects_malformed_fields(client, users, auth_headers, payload):
    resp = client.post('/api/products', headers=auth_headers(users.main), json=payload)
    assert resp.status_code == 400
    assert Product.query.count() == 0


@pytest.mark.parametrize('payload', [
    {'pounds': 10 ** 9},
    {'pounds': 2, 'color': {'hex': '#fff'}},
    {'pounds': 2, 'message': ['Happy', 'birthday']},
    {'pounds': 2, 'layers': 3},
    {'pounds': 2, 'mainBakerId': 10 ** 20},
])
def test_custom_cake_rejects_malformed_fields(client, users, auth_headers, payload):
    resp = client.post('/api/custom-cakes', headers=auth_headers(users.customer), json=payload)
    assert resp.status_code == 400


def test_admin_updates_product(client, users, products, auth_headers, shipping):
    placed = orders.create_order(users.customer, [{'productId': products.bread.id, 'quantity': 1}], shipping)
    resp = client.patch(f'/api/admin/products/{products.bread.id}', headers=auth_headers(users.admin),
                        json={'price': '12.50', 'isBestSeller': True, 'name': 'Country Sourdough'})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['price'] == 12.5
    assert body['isBestSeller'] is True
    assert body['name'] == 'Country Sourdough'
    assert body['mainBakerId'] == users.main.id

    db.session.expire_all()
    item = OrderItem.query.filter_by(order_id=placed.id).one()
    assert item.price_per_item == Decimal('10.00')


def test_admin_product_update_validation(client, users, products, auth_headers):
    url = f'/api/admin/products/{products.bread.id}'
    headers = auth_headers(users.admin)
    assert client.patch(url, headers=headers, json={'category': 'Gadgets'}).status_code == 400
    assert client.patch(url, headers=headers, json={'price': -2}).status_code == 400
    assert client.patch(url, headers=headers, json={'name': ''}).status_code == 400
    assert client.patch('/api/admin/products/999', headers=headers, json={'price': 1}).status_code == 404
    assert client.patch(url, headers=auth_headers(users.main), json={'price': 1}).status_code == 403


def test_admin_deletes_unordered_product(client, users, products, auth_headers):
    resp = client.delete(f'/api/admin/products/{products.tart.id}', headers=auth_headers(users.admin))
    assert resp.status_code == 200
    assert client.get(f'/api/products/{products.tart.id}').status_code == 404
    assert len(client.get('/api/admin/products', headers=auth_headers(users.admin)).get_json()) == 2


def test_ordered_product_cannot_be_deleted(client, order, users, products, auth_headers):
    resp = client.delete(f'/api/admin/products/{products.bread.id}', headers=auth_headers(users.admin))
    assert resp.status_code == 409
    assert db.session.get(Product, products.bread.id) is not None


def test_product_admin_needs_admin(users, products):
    with pytest.raises(AuthorizationError):
        catalog.update_product(users.main, products.bread.id, {'price': 1})
    with pytest.raises(AuthorizationError):
        catalog.delete_product(users.main, products.bread.id)
