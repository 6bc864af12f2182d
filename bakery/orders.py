# bakery/orders.py
"""Order lifecycle: checkout, routing to bakers and status transitions.

Prices always come from the stored product or custom cake; totals sent by
the client are never read. Status changes go through ``TRANSITIONS`` and are
applied with a conditional UPDATE so that two concurrent actors cannot both
move an order out of the same state.
"""
import secrets
from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from . import teams
from .earnings import distribute_order_payment
from .errors import (AuthorizationError, ConflictError, InvalidStateError,
                     InvalidTransitionError, NotFoundError, ValidationError)
from .models import (ORDER_STATUSES, CustomCake, Order, OrderItem, Product,
                     ShippingInfo, User, db, isoformat_utc, utc_now)
from .validation import parse_id, parse_quantity, require_text

TRANSITIONS = {
    'pending': {'processing', 'cancelled'},
    'processing': {'quality_check', 'cancelled'},
    'quality_check': {'ready', 'cancelled'},
    'ready': {'delivered'},
    'delivered': set(),
    'cancelled': set(),
}
TERMINAL_STATUSES = {'delivered', 'cancelled'}

SHIPPING_FIELDS = (
    ('fullName', 'full_name'),
    ('email', 'email'),
    ('phone', 'phone'),
    ('address', 'address'),
    ('city', 'city'),
    ('state', 'state'),
    ('zipCode', 'zip_code'),
    ('paymentMethod', 'payment_method'),
)
CENTS = Decimal('0.01')


def _new_order_code():
    while True:
        code = f'BB-ORD-{100000 + secrets.randbelow(900000)}'
        if not Order.query.filter_by(order_code=code).first():
            return code


def _parse_shipping(shipping_info):
    if not isinstance(shipping_info, dict):
        raise ValidationError('Shipping information is required')
    return {column: require_text(shipping_info, key) for key, column in SHIPPING_FIELDS}


def _resolve_item(principal, raw):
    """Build an OrderItem priced from the database; returns (item, main_baker_id)."""
    if not isinstance(raw, dict):
        raise ValidationError('Invalid order item')
    product_id = parse_id(raw.get('productId'), 'productId', required=False)
    custom_cake_id = parse_id(raw.get('customCakeId'), 'customCakeId', required=False)
    if (product_id is None) == (custom_cake_id is None):
        raise ValidationError('Each item must reference exactly one of productId or customCakeId')
    quantity = parse_quantity(raw.get('quantity', 1))

    if product_id is not None:
        product = db.session.get(Product, product_id)
        if product is None:
            raise ValidationError(f'Unknown product {product_id}')
        if not product.in_stock:
            raise ValidationError(f'Product {product_id} is out of stock')
        item = OrderItem(product_id=product.id, quantity=quantity, price_per_item=Decimal(product.price))
        return item, product.main_baker_id

    cake = db.session.get(CustomCake, custom_cake_id)
    if cake is None or cake.user_id != principal.id:
        raise ValidationError(f'Unknown custom cake {custom_cake_id}')
    item = OrderItem(custom_cake_id=cake.id, quantity=quantity, price_per_item=Decimal(cake.total_price))
    return item, cake.main_baker_id


def create_order(principal, items, shipping_info):
    if not isinstance(items, list) or not items:
        raise ValidationError('Order must contain at least one item')
    shipping = _parse_shipping(shipping_info)
    resolved = [_resolve_item(principal, raw) for raw in items]

    order_items = [item for item, _ in resolved]
    total = sum((item.price_per_item * item.quantity for item in order_items), Decimal('0.00'))
    owners = {baker_id for _, baker_id in resolved}
    # route straight to the baker when the whole cart belongs to one of them
    main_baker_id = owners.pop() if len(owners) == 1 else None

    hours = current_app.config['ORDER_DEADLINE_HOURS']
    order = Order(
        order_code=_new_order_code(),
        user_id=principal.id,
        status='pending',
        total_amount=total.quantize(CENTS),
        main_baker_id=main_baker_id,
        deadline=utc_now() + timedelta(hours=hours),
    )
    order.items = order_items
    order.shipping_info = ShippingInfo(**shipping)
    db.session.add(order)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    current_app.logger.info('Order %s created by user %s, total %s, routed to %s',
                            order.order_code, principal.id, order.total_amount, main_baker_id)
    return order


def _get_order(order_id):
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError('Order not found')
    return order


def get_order(principal, order_id):
    order = _get_order(order_id)
    if principal.role != 'admin' and principal.id not in order.participant_ids():
        raise AuthorizationError('Not allowed to view this order')
    return order


def list_orders(principal):
    query = Order.query
    if principal.role == 'customer':
        query = query.filter(Order.user_id == principal.id)
    elif principal.role == 'junior_baker':
        query = query.filter(Order.junior_baker_id == principal.id)
    elif principal.role == 'main_baker':
        query = query.filter(Order.main_baker_id == principal.id)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def track_order(order_code):
    order = Order.query.filter_by(order_code=order_code).first()
    if order is None:
        raise NotFoundError('Order not found')
    return {
        'orderId': order.order_code,
        'status': order.status,
        'deadline': isoformat_utc(order.deadline),
        'createdAt': isoformat_utc(order.created_at),
        'items': [{'name': item.to_dict()['name'], 'quantity': item.quantity} for item in order.items],
    }


def assign_baker(principal, order_id, main_baker_id=None, junior_baker_id=None):
    order = _get_order(order_id)
    if order.status in TERMINAL_STATUSES:
        raise InvalidStateError('Cannot assign bakers to a delivered or cancelled order')

    if principal.role == 'admin':
        target_main_id = main_baker_id or order.main_baker_id
    elif principal.role == 'main_baker':
        if main_baker_id not in (None, principal.id):
            raise AuthorizationError('Main bakers can only assign orders to themselves')
        if order.main_baker_id not in (None, principal.id):
            raise AuthorizationError('Order is routed to another main baker')
        target_main_id = principal.id
    else:
        raise AuthorizationError('Only an admin or the order\'s main baker can assign bakers')

    if target_main_id is None:
        raise ValidationError('mainBakerId is required')
    main_baker = db.session.get(User, target_main_id)
    if main_baker is None or main_baker.role != 'main_baker':
        raise ValidationError('mainBakerId must reference a main baker')

    if junior_baker_id is not None:
        if not teams.is_team_member(target_main_id, junior_baker_id):
            raise ValidationError('Junior baker is not on this main baker\'s team')
        order.junior_baker_id = junior_baker_id
        if order.status == 'pending':
            order.status = 'processing'
    elif order.junior_baker_id and order.main_baker_id != target_main_id:
        order.junior_baker_id = None
    order.main_baker_id = target_main_id
    db.session.commit()
    current_app.logger.info('Order %s assigned to main baker %s, junior baker %s by user %s',
                            order.id, order.main_baker_id, order.junior_baker_id, principal.id)
    return order


def _check_can_advance(principal, order):
    if principal.role == 'admin':
        return
    if principal.role == 'main_baker' and order.main_baker_id == principal.id:
        return
    if principal.role == 'junior_baker' and order.junior_baker_id == principal.id:
        return
    raise AuthorizationError('Only the assigned bakers or an admin can update this order')


def _is_allowed(principal, current, next_status):
    if next_status in TRANSITIONS[current]:
        return True
    # admin force-cancel from any non-terminal state
    return (principal.role == 'admin' and next_status == 'cancelled'
            and current not in TERMINAL_STATUSES)


def advance_status(principal, order_id, next_status):
    if next_status not in ORDER_STATUSES:
        raise ValidationError('Invalid status')
    order = _get_order(order_id)
    _check_can_advance(principal, order)
    current = order.status
    if not _is_allowed(principal, current, next_status):
        raise InvalidTransitionError(f'Cannot move order from {current} to {next_status}')

    updated = (Order.query
               .filter(Order.id == order.id, Order.status == current)
               .update({'status': next_status, 'updated_at': utc_now()}, synchronize_session=False))
    if updated != 1:
        db.session.rollback()
        raise ConflictError('Order status was changed by someone else')
    db.session.refresh(order)
    if next_status == 'delivered':
        _on_delivered(order)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    current_app.logger.info('Order %s moved from %s to %s by user %s',
                            order.id, current, next_status, principal.id)
    return order


def _on_delivered(order):
    if order.junior_baker_id:
        (User.query.filter(User.id == order.junior_baker_id)
         .update({'completed_orders': User.completed_orders + 1}, synchronize_session=False))
    distribute_order_payment(order)


def mark_delivered(principal, order_id):
    return advance_status(principal, order_id, 'delivered')
