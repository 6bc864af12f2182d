# bakery/models.py
from datetime import datetime, timezone
from decimal import Decimal

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

ROLES = ('customer', 'junior_baker', 'main_baker', 'admin')
ORDER_STATUSES = ('pending', 'processing', 'quality_check', 'ready', 'delivered', 'cancelled')
APPLICATION_STATUSES = ('pending', 'approved', 'rejected')


def utc_now():
    return datetime.now(timezone.utc)


def isoformat_utc(value):
    if value is None:
        return None
    # SQLite returns naive datetimes; every stored value is UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _money(value):
    return float(value) if value is not None else None


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.Enum(*ROLES, name='user_role', native_enum=False, validate_strings=True),
                     nullable=False, default='customer')
    profile_image = db.Column(db.String(255), nullable=True)
    completed_orders = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'username': self.username,
            'fullName': self.full_name,
            'role': self.role,
            'profileImage': self.profile_image,
            'completedOrders': self.completed_orders,
            'createdAt': isoformat_utc(self.created_at),
        }


class BakerTeam(db.Model):
    """Assignment of a junior baker to a main baker.

    Only one row per junior baker may be active; older rows are kept with
    ``is_active`` cleared as assignment history.
    """
    __tablename__ = 'baker_teams'
    __table_args__ = (
        db.Index('ux_baker_teams_active_junior', 'junior_baker_id', unique=True,
                 sqlite_where=db.text('is_active = 1'),
                 postgresql_where=db.text('is_active')),
    )
    id = db.Column(db.Integer, primary_key=True)
    main_baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    junior_baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    assigned_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    main_baker = db.relationship('User', foreign_keys=[main_baker_id])
    junior_baker = db.relationship('User', foreign_keys=[junior_baker_id])

    def to_dict(self):
        return {
            'id': self.id,
            'mainBakerId': self.main_baker_id,
            'juniorBakerId': self.junior_baker_id,
            'isActive': self.is_active,
            'assignedAt': isoformat_utc(self.assigned_at),
        }


class BakerApplication(db.Model):
    __tablename__ = 'baker_applications'
    __table_args__ = (
        db.Index('ux_baker_applications_pending_user', 'user_id', unique=True,
                 sqlite_where=db.text("status = 'pending'"),
                 postgresql_where=db.text("status = 'pending'")),
    )
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    main_baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    current_role = db.Column(db.String(20), nullable=False)
    requested_role = db.Column(db.String(20), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')
    reviewed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    applicant = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'mainBakerId': self.main_baker_id,
            'currentRole': self.current_role,
            'requestedRole': self.requested_role,
            'reason': self.reason,
            'status': self.status,
            'reviewedBy': self.reviewed_by,
            'createdAt': isoformat_utc(self.created_at),
        }


class Product(db.Model):
    __tablename__ = 'products'
    id = db.Column(db.Integer, primary_key=True)
    main_baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(50), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    image_url = db.Column(db.String(255), default='placeholder.png')
    in_stock = db.Column(db.Boolean, nullable=False, default=True)
    is_new = db.Column(db.Boolean, nullable=False, default=False)
    is_best_seller = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    main_baker = db.relationship('User', backref='products')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'price': _money(self.price),
            'imageUrl': self.image_url,
            'inStock': self.in_stock,
            'isNew': self.is_new,
            'isBestSeller': self.is_best_seller,
            'mainBakerId': self.main_baker_id,
        }


class CustomCake(db.Model):
    __tablename__ = 'custom_cakes'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    main_baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    name = db.Column(db.String(120), nullable=True)
    layers = db.Column(db.String(20), nullable=False, default='2layer')
    color = db.Column(db.String(40), nullable=True)
    side_design = db.Column(db.String(40), nullable=True)
    upper_design = db.Column(db.String(40), nullable=True)
    pounds = db.Column(db.Numeric(5, 2), nullable=False)
    message = db.Column(db.String(255), nullable=True)
    special_instructions = db.Column(db.Text, nullable=True)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'mainBakerId': self.main_baker_id,
            'name': self.name,
            'layers': self.layers,
            'color': self.color,
            'sideDesign': self.side_design,
            'upperDesign': self.upper_design,
            'pounds': _money(self.pounds),
            'message': self.message,
            'specialInstructions': self.special_instructions,
            'totalPrice': _money(self.total_price),
        }


class Order(db.Model):
    __tablename__ = 'orders'
    id = db.Column(db.Integer, primary_key=True)
    order_code = db.Column(db.String(20), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0.00'))
    main_baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    junior_baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    items = db.relationship('OrderItem', backref='order', lazy=True, cascade='all, delete-orphan')
    shipping_info = db.relationship('ShippingInfo', backref='order', uselist=False,
                                    cascade='all, delete-orphan')
    customer = db.relationship('User', foreign_keys=[user_id])

    def participant_ids(self):
        return {uid for uid in (self.user_id, self.main_baker_id, self.junior_baker_id) if uid}

    def to_dict(self, include_shipping=True, include_customer=False):
        data = {
            'id': self.id,
            'orderId': self.order_code,
            'userId': self.user_id,
            'status': self.status,
            'totalAmount': _money(self.total_amount),
            'mainBakerId': self.main_baker_id,
            'juniorBakerId': self.junior_baker_id,
            'deadline': isoformat_utc(self.deadline),
            'createdAt': isoformat_utc(self.created_at),
            'items': [item.to_dict() for item in self.items],
        }
        if include_shipping:
            data['shippingInfo'] = self.shipping_info.to_dict() if self.shipping_info else None
        if include_customer:
            data['user'] = {'fullName': self.customer.full_name, 'email': self.customer.email}
        return data


class OrderItem(db.Model):
    __tablename__ = 'order_items'
    __table_args__ = (
        db.CheckConstraint('(product_id IS NULL) != (custom_cake_id IS NULL)', name='ck_order_items_one_source'),
        db.CheckConstraint('quantity > 0', name='ck_order_items_quantity'),
    )
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=True)
    custom_cake_id = db.Column(db.Integer, db.ForeignKey('custom_cakes.id'), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_per_item = db.Column(db.Numeric(10, 2), nullable=False)
    product = db.relationship('Product')
    custom_cake = db.relationship('CustomCake')

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'customCakeId': self.custom_cake_id,
            'name': self.product.name if self.product else (self.custom_cake.name if self.custom_cake else None),
            'quantity': self.quantity,
            'pricePerItem': _money(self.price_per_item),
        }


class ShippingInfo(db.Model):
    __tablename__ = 'shipping_info'
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False, unique=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(40), nullable=False)
    address = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(80), nullable=False)
    state = db.Column(db.String(80), nullable=False)
    zip_code = db.Column(db.String(20), nullable=False)
    payment_method = db.Column(db.String(40), nullable=False)

    def to_dict(self):
        return {
            'fullName': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'zipCode': self.zip_code,
            'paymentMethod': self.payment_method,
        }


class Chat(db.Model):
    __tablename__ = 'chats'
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    message = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), default=utc_now, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            'id': self.id,
            'orderId': self.order_id,
            'senderId': self.sender_id,
            'message': self.message,
            'timestamp': isoformat_utc(self.timestamp),
            'isRead': self.is_read,
        }


class DirectMessage(db.Model):
    __tablename__ = 'direct_messages'
    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), default=utc_now, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            'id': self.id,
            'senderId': self.sender_id,
            'receiverId': self.receiver_id,
            'message': self.message,
            'timestamp': isoformat_utc(self.timestamp),
            'isRead': self.is_read,
        }


class Review(db.Model):
    __tablename__ = 'reviews'
    __table_args__ = (
        db.CheckConstraint('rating BETWEEN 1 AND 5', name='ck_reviews_rating'),
    )
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    junior_baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    is_verified_purchase = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    author = db.relationship('User', foreign_keys=[user_id])
    junior_baker = db.relationship('User', foreign_keys=[junior_baker_id])

    def to_dict(self):
        return {
            'id': self.id,
            'orderId': self.order_id,
            'userId': self.user_id,
            'juniorBakerId': self.junior_baker_id,
            'rating': self.rating,
            'comment': self.comment,
            'isVerifiedPurchase': self.is_verified_purchase,
            'createdAt': isoformat_utc(self.created_at),
        }


class BakerEarning(db.Model):
    __tablename__ = 'baker_earnings'
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False, index=True)
    baker_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    baker_type = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    percentage = db.Column(db.Numeric(5, 2), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    order = db.relationship('Order')

    def to_dict(self):
        return {
            'orderId': self.order_id,
            'orderNumber': self.order.order_code if self.order else None,
            'bakerId': self.baker_id,
            'bakerType': self.baker_type,
            'amount': _money(self.amount),
            'percentage': _money(self.percentage),
            'createdAt': isoformat_utc(self.created_at),
        }
