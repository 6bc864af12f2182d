# bakery/catalog.py
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .models import CustomCake, OrderItem, Product, User, db
from .validation import optional_text, parse_decimal, parse_id, require_text

CATEGORIES = ['Cakes', 'Cupcakes', 'Breads', 'Pastries', 'Cookies', 'Other']

CAKE_BASE_PRICE = Decimal('25')
CAKE_PRICE_PER_POUND = Decimal('15')
CAKE_LAYER_MULTIPLIERS = {
    '2layer': Decimal('1.0'),
    '3layer': Decimal('1.3'),
    '4layer': Decimal('1.6'),
}
CAKE_DESIGN_MULTIPLIER = Decimal('1.2')
CAKE_MIN_POUNDS = Decimal('0.5')
CAKE_MAX_POUNDS = Decimal('100')
MAX_PRICE = Decimal('99999999.99')
CENTS = Decimal('0.01')


def list_products(category=None):
    query = Product.query
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.created_at.desc(), Product.id.desc()).all()


def get_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Product not found')
    return product


def _parse_price(raw):
    price = parse_decimal(raw, 'price', maximum=MAX_PRICE)
    if price < 0:
        raise ValidationError('Invalid price')
    return price.quantize(CENTS)


def _parse_flag(data, field, default):
    value = data.get(field, default)
    if not isinstance(value, bool):
        raise ValidationError(f'{field} must be true or false')
    return value


def create_product(principal, data):
    name = require_text(data, 'name', 'Product name')
    price = _parse_price(data.get('price'))
    category = data.get('category')
    if category not in CATEGORIES:
        category = 'Other'
    product = Product(
        main_baker_id=principal.id,
        name=name,
        description=optional_text(data, 'description'),
        category=category,
        price=price,
        image_url=optional_text(data, 'imageUrl') or 'placeholder.png',
        in_stock=_parse_flag(data, 'inStock', True),
        is_new=_parse_flag(data, 'isNew', False),
        is_best_seller=_parse_flag(data, 'isBestSeller', False),
    )
    db.session.add(product)
    db.session.commit()
    current_app.logger.info('Main baker %s listed product %s', principal.id, product.id)
    return product


def update_product(principal, product_id, data):
    """Apply an admin edit to the fields present in ``data``.

    The owning main baker cannot be changed. Orders already placed keep the
    price they were charged.
    """
    if principal.role != 'admin':
        raise AuthorizationError('Only admins can edit products')
    product = get_product(product_id)
    changes = {}
    if 'name' in data:
        changes['name'] = require_text(data, 'name', 'Product name')
    if 'description' in data:
        changes['description'] = optional_text(data, 'description')
    if 'category' in data:
        if data['category'] not in CATEGORIES:
            raise ValidationError('category must be one of ' + ', '.join(CATEGORIES))
        changes['category'] = data['category']
    if 'price' in data:
        changes['price'] = _parse_price(data['price'])
    if 'imageUrl' in data:
        changes['image_url'] = optional_text(data, 'imageUrl') or 'placeholder.png'
    for field, column in (('inStock', 'in_stock'), ('isNew', 'is_new'), ('isBestSeller', 'is_best_seller')):
        if field in data:
            changes[column] = _parse_flag(data, field, False)
    for column, value in changes.items():
        setattr(product, column, value)
    db.session.commit()
    current_app.logger.info('Admin %s updated product %s: %s', principal.id, product.id, sorted(changes))
    return product


def delete_product(principal, product_id):
    if principal.role != 'admin':
        raise AuthorizationError('Only admins can delete products')
    product = get_product(product_id)
    if OrderItem.query.filter_by(product_id=product.id).first():
        raise ConflictError('Product has been ordered; mark it out of stock instead')
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info('Admin %s deleted product %s', principal.id, product_id)


def price_custom_cake(pounds, layers):
    """Price a custom cake: a one-pound base, a per-pound surcharge, then the
    layer and design multipliers."""
    if not isinstance(layers, str) or layers not in CAKE_LAYER_MULTIPLIERS:
        raise ValidationError('layers must be one of ' + ', '.join(CAKE_LAYER_MULTIPLIERS))
    if pounds < CAKE_MIN_POUNDS:
        raise ValidationError(f'Minimum cake weight is {CAKE_MIN_POUNDS} pounds')
    price = CAKE_BASE_PRICE
    if pounds > 1:
        price += (pounds - 1) * CAKE_PRICE_PER_POUND
    price *= CAKE_LAYER_MULTIPLIERS[layers]
    price *= CAKE_DESIGN_MULTIPLIER
    return price.quantize(CENTS, rounding=ROUND_HALF_UP)


def create_custom_cake(principal, data):
    pounds = parse_decimal(data.get('pounds'), 'pounds', maximum=CAKE_MAX_POUNDS)
    layers = data.get('layers') or '2layer'
    main_baker_id = parse_id(data.get('mainBakerId'), 'mainBakerId', required=False)
    if main_baker_id is not None:
        baker = db.session.get(User, main_baker_id)
        if baker is None or baker.role != 'main_baker':
            raise ValidationError('mainBakerId must reference a main baker')
    cake = CustomCake(
        user_id=principal.id,
        main_baker_id=main_baker_id,
        name=optional_text(data, 'name') or 'Custom Cake',
        layers=layers,
        color=optional_text(data, 'color'),
        side_design=optional_text(data, 'sideDesign'),
        upper_design=optional_text(data, 'upperDesign'),
        pounds=pounds,
        message=optional_text(data, 'message'),
        special_instructions=optional_text(data, 'specialInstructions'),
        total_price=price_custom_cake(pounds, layers),
    )
    db.session.add(cake)
    db.session.commit()
    return cake


def list_custom_cakes(principal):
    return CustomCake.query.filter_by(user_id=principal.id).order_by(CustomCake.id.desc()).all()
