from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value

from bakery import orders
from bakery.errors import (AuthorizationError, ConflictError, InvalidStateError,
                           InvalidTransitionError, NotFoundError, ValidationError)
from bakery.models import Order, OrderItem, ShippingInfo, db


def test_total_ignores_forged_client_total(client, users, products, auth_headers, shipping):
    resp = client.post('/api/orders', headers=auth_headers(users.customer), json={
        'items': [
            {'productId': products.bread.id, 'quantity': 2, 'pricePerItem': 0.01},
            {'productId': products.cookie.id, 'quantity': 1},
        ],
        'shippingInfo': shipping,
        'totalAmount': 1.00,
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['totalAmount'] == 25.0
    assert [i['pricePerItem'] for i in body['items']] == [10.0, 5.0]
    assert body['status'] == 'pending'
    assert body['orderId'].startswith('BB-ORD-')
    assert body['shippingInfo']['zipCode'] == '62701'
    assert body['deadline'] is not None

    stored = db.session.get(Order, body['id'])
    assert stored.total_amount == Decimal('25.00')


def test_order_routed_to_single_main_baker(order, users):
    assert order.main_baker_id == users.main.id
    assert order.junior_baker_id is None


def test_mixed_bakers_leave_order_unrouted(users, products, shipping):
    mixed = orders.create_order(users.customer, [
        {'productId': products.bread.id, 'quantity': 1},
        {'productId': products.tart.id, 'quantity': 2},
    ], shipping)
    assert mixed.main_baker_id is None
    assert mixed.total_amount == Decimal('25.00')


@pytest.mark.parametrize('items', [
    [],
    None,
    [{'quantity': 1}],
    [{'productId': 999, 'quantity': 1}],
    [{'productId': 1, 'customCakeId': 1, 'quantity': 1}],
    [{'productId': 1, 'quantity': 0}],
    [{'productId': 1, 'quantity': 'many'}],
    [{'productId': 1, 'quantity': 10 ** 20}],
    [{'productId': 1, 'quantity': 1000}],
    [{'productId': 10 ** 20, 'quantity': 1}],
    [{'productId': {'id': 1}, 'quantity': 1}],
])
def test_invalid_items_create_nothing(users, products, shipping, items):
    with pytest.raises(ValidationError):
        orders.create_order(users.customer, items, shipping)
    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0
    assert ShippingInfo.query.count() == 0


def test_unknown_product_is_bad_request(client, users, products, auth_headers, shipping):
    resp = client.post('/api/orders', headers=auth_headers(users.customer), json={
        'items': [{'productId': products.bread.id, 'quantity': 1}, {'productId': 4242, 'quantity': 1}],
        'shippingInfo': shipping,
    })
    assert resp.status_code == 400
    assert Order.query.count() == 0


def test_shipping_info_required(users, products, shipping):
    del shipping['zipCode']
    with pytest.raises(ValidationError, match='zipCode'):
        orders.create_order(users.customer, [{'productId': products.bread.id, 'quantity': 1}], shipping)


def test_out_of_stock_product_rejected(users, products, shipping):
    products.cookie.in_stock = False
    db.session.commit()
    with pytest.raises(ValidationError, match='out of stock'):
        orders.create_order(users.customer, [{'productId': products.cookie.id, 'quantity': 1}], shipping)


def test_custom_cake_order(client, users, auth_headers, shipping):
    headers = auth_headers(users.customer)
    cake = client.post('/api/custom-cakes', headers=headers,
                       json={'pounds': 2, 'layers': '2layer', 'mainBakerId': users.main.id}).get_json()
    resp = client.post('/api/orders', headers=headers, json={
        'items': [{'customCakeId': cake['id'], 'quantity': 1}], 'shippingInfo': shipping,
    })
    assert resp.status_code == 201
    assert resp.get_json()['totalAmount'] == 48.0
    assert resp.get_json()['mainBakerId'] == users.main.id


def test_cannot_order_someone_elses_custom_cake(client, users, auth_headers, shipping):
    cake = client.post('/api/custom-cakes', headers=auth_headers(users.outsider),
                       json={'pounds': 1}).get_json()
    resp = client.post('/api/orders', headers=auth_headers(users.customer), json={
        'items': [{'customCakeId': cake['id'], 'quantity': 1}], 'shippingInfo': shipping,
    })
    assert resp.status_code == 400


def test_orders_require_login(client, products, shipping):
    resp = client.post('/api/orders', json={'items': [{'productId': products.bread.id}], 'shippingInfo': shipping})
    assert resp.status_code == 401


def test_full_lifecycle(order, users):
    orders.assign_baker(users.main, order.id, junior_baker_id=users.junior.id)
    assert order.status == 'processing'
    assert order.junior_baker_id == users.junior.id
    for status in ('quality_check', 'ready'):
        orders.advance_status(users.junior, order.id, status)
    orders.mark_delivered(users.main, order.id)
    assert db.session.get(Order, order.id).status == 'delivered'


def test_backward_transition_rejected(order, users, advance_to):
    advance_to(order, 'ready')
    with pytest.raises(InvalidTransitionError):
        orders.advance_status(users.main, order.id, 'pending')
    assert db.session.get(Order, order.id).status == 'ready'


@pytest.mark.parametrize('start,target', [
    ('pending', 'ready'),
    ('pending', 'delivered'),
    ('processing', 'ready'),
    ('quality_check', 'processing'),
    ('ready', 'cancelled'),
    ('delivered', 'cancelled'),
])
def test_transitions_outside_table_are_rejected(order, users, advance_to, start, target):
    if start != 'pending':
        advance_to(order, start)
    with pytest.raises(InvalidTransitionError):
        orders.advance_status(users.main, order.id, target)
    assert db.session.get(Order, order.id).status == start


@pytest.mark.parametrize('start', ['pending', 'processing', 'quality_check'])
def test_baker_can_cancel_before_ready(order, users, advance_to, start):
    if start != 'pending':
        advance_to(order, start)
    orders.advance_status(users.main, order.id, 'cancelled')
    assert order.status == 'cancelled'


def test_admin_force_cancel_from_ready(order, users, advance_to):
    advance_to(order, 'ready')
    orders.advance_status(users.admin, order.id, 'cancelled')
    assert order.status == 'cancelled'


def test_terminal_orders_stay_terminal(order, users, advance_to):
    advance_to(order, 'delivered')
    with pytest.raises(InvalidTransitionError):
        orders.advance_status(users.admin, order.id, 'cancelled')


def test_status_change_is_conditional_on_current_status(order, users):
    orders.advance_status(users.main, order.id, 'processing')
    db.session.refresh(order)
    # a second actor still holding the order as it was before the first change
    set_committed_value(order, 'status', 'pending')
    with pytest.raises(ConflictError):
        orders.advance_status(users.admin, order.id, 'cancelled')
    db.session.expire_all()
    assert db.session.get(Order, order.id).status == 'processing'


def test_unassigned_bakers_cannot_change_status(order, users):
    with pytest.raises(AuthorizationError):
        orders.advance_status(users.other_main, order.id, 'processing')
    with pytest.raises(AuthorizationError):
        orders.advance_status(users.junior, order.id, 'processing')


def test_status_endpoint(client, order, users, auth_headers):
    url = f'/api/orders/{order.id}/status'
    assert client.patch(url, json={'status': 'processing'}, headers=auth_headers(users.customer)).status_code == 403
    assert client.patch(url, json={'status': 'baked'}, headers=auth_headers(users.main)).status_code == 400
    assert client.patch(url, json={'status': 'ready'}, headers=auth_headers(users.main)).status_code == 409
    resp = client.patch(url, json={'status': 'processing'}, headers=auth_headers(users.main))
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'processing'
    assert client.patch('/api/orders/999/status', json={'status': 'processing'},
                        headers=auth_headers(users.admin)).status_code == 404


def test_assign_requires_team_membership(order, users):
    with pytest.raises(ValidationError):
        orders.assign_baker(users.main, order.id, junior_baker_id=users.outsider.id)
    with pytest.raises(AuthorizationError):
        orders.assign_baker(users.other_main, order.id)
    with pytest.raises(AuthorizationError):
        orders.assign_baker(users.main, order.id, main_baker_id=users.other_main.id)


def test_admin_routes_unrouted_order(users, products, shipping):
    mixed = orders.create_order(users.customer, [
        {'productId': products.bread.id, 'quantity': 1},
        {'productId': products.tart.id, 'quantity': 1},
    ], shipping)
    with pytest.raises(ValidationError):
        orders.assign_baker(users.admin, mixed.id)
    orders.assign_baker(users.admin, mixed.id, main_baker_id=users.other_main.id)
    assert mixed.main_baker_id == users.other_main.id
    assert mixed.status == 'pending'


def test_main_baker_claims_unrouted_order(users, products, shipping):
    mixed = orders.create_order(users.customer, [
        {'productId': products.bread.id, 'quantity': 1},
        {'productId': products.tart.id, 'quantity': 1},
    ], shipping)
    orders.assign_baker(users.main, mixed.id, junior_baker_id=users.junior.id)
    assert (mixed.main_baker_id, mixed.junior_baker_id, mixed.status) == (users.main.id, users.junior.id, 'processing')


def test_cannot_assign_finished_order(order, users, advance_to):
    advance_to(order, 'delivered')
    with pytest.raises(InvalidStateError):
        orders.assign_baker(users.admin, order.id, main_baker_id=users.other_main.id)


def test_assign_endpoint(client, order, users, auth_headers):
    url = f'/api/orders/{order.id}/assign'
    assert client.patch(url, json={'juniorBakerId': users.junior.id},
                        headers=auth_headers(users.junior)).status_code == 403
    resp = client.patch(url, json={'juniorBakerId': users.junior.id}, headers=auth_headers(users.main))
    assert resp.status_code == 200
    assert resp.get_json()['juniorBakerId'] == users.junior.id


def test_list_orders_is_role_scoped(client, order, users, auth_headers):
    def ids(user):
        return [o['id'] for o in client.get('/api/orders', headers=auth_headers(user)).get_json()]

    assert ids(users.customer) == [order.id]
    assert ids(users.outsider) == []
    assert ids(users.main) == [order.id]
    assert ids(users.other_main) == []
    assert ids(users.junior) == []
    assert ids(users.admin) == [order.id]
    orders.assign_baker(users.main, order.id, junior_baker_id=users.junior.id)
    assert ids(users.junior) == [order.id]


def test_order_detail_for_participants_only(client, order, users, auth_headers):
    assert client.get(f'/api/orders/{order.id}', headers=auth_headers(users.customer)).status_code == 200
    assert client.get(f'/api/orders/{order.id}', headers=auth_headers(users.admin)).status_code == 200
    assert client.get(f'/api/orders/{order.id}', headers=auth_headers(users.outsider)).status_code == 403


def test_public_tracking(client, order):
    resp = client.get(f'/api/orders/track/{order.order_code}')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'pending'
    assert 'shippingInfo' not in body
    assert {i['name'] for i in body['items']} == {'Sourdough', 'Cookie'}
    assert client.get('/api/orders/track/BB-ORD-000000').status_code == 404


def test_get_unknown_order(users):
    with pytest.raises(NotFoundError):
        orders.get_order(users.admin, 12345)


def test_oversized_quantity_is_bad_request(client, users, products, auth_headers, shipping):
    resp = client.post('/api/orders', headers=auth_headers(users.customer), json={
        'items': [{'productId': products.bread.id, 'quantity': 10 ** 20}], 'shippingInfo': shipping,
    })
    assert resp.status_code == 400
    assert Order.query.count() == 0


def test_failed_commit_leaves_no_partial_order(monkeypatch, users, products, shipping):
    session = db.session()

    def commit_fails():
        session.flush()
        raise SQLAlchemyError('connection lost during commit')

    monkeypatch.setattr(session, 'commit', commit_fails)
    with pytest.raises(SQLAlchemyError):
        orders.create_order(users.customer, [
            {'productId': products.bread.id, 'quantity': 2},
            {'productId': products.cookie.id, 'quantity': 1},
        ], shipping)
    monkeypatch.undo()

    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0
    assert ShippingInfo.query.count() == 0


def test_timestamps_keep_utc_offset_after_reload(order):
    created = order.to_dict()
    db.session.expire_all()
    reloaded = db.session.get(Order, order.id).to_dict()
    assert created['deadline'].endswith('+00:00')
    assert reloaded['deadline'] == created['deadline']
    assert reloaded['createdAt'].endswith('+00:00')
    assert orders.track_order(order.order_code)['deadline'] == created['deadline']


def test_admin_order_listing_includes_customer(client, order, users, auth_headers):
    resp = client.get('/api/admin/orders', headers=auth_headers(users.admin))
    assert resp.status_code == 200
    listed = resp.get_json()
    assert [o['id'] for o in listed] == [order.id]
    assert listed[0]['user'] == {'fullName': 'Carla', 'email': 'carla@bakery.test'}
    assert client.get('/api/admin/orders', headers=auth_headers(users.main)).status_code == 403


def test_oversized_path_id_is_not_found(client, users, auth_headers):
    resp = client.get(f'/api/orders/{10 ** 20}', headers=auth_headers(users.customer))
    assert resp.status_code == 404
