# bakery/routes.py
from flask import Blueprint, Response, jsonify, request, stream_with_context
from werkzeug.routing import IntegerConverter

from . import auth, catalog, chat, dashboard, earnings, orders, reviews, teams
from .auth import login_required, role_required
from .errors import AuthorizationError, ValidationError
from .validation import MAX_ID, parse_id

api = Blueprint('api', __name__, url_prefix='/api')


class RowIdConverter(IntegerConverter):
    """`<int:...>` that stops at the INTEGER column range, so oversized ids 404."""

    def __init__(self, url_map, *args, **kwargs):
        kwargs.setdefault('max', MAX_ID)
        super().__init__(url_map, *args, **kwargs)


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _after_arg():
    return parse_id(request.args.get('after'), 'after', required=False)


@api.route('/health')
def health():
    return jsonify(status='ok')


# ---------- auth ----------

@api.route('/auth/register', methods=['POST'])
def register():
    data = json_body()
    user = auth.register_user(data.get('email'), data.get('username'),
                              data.get('password'), data.get('fullName'))
    return jsonify(user=user.to_dict(), token=auth.issue_token(user)), 201


@api.route('/auth/login', methods=['POST'])
def login():
    data = json_body()
    user = auth.authenticate(data.get('email'), data.get('password'))
    return jsonify(user=user.to_dict(), token=auth.issue_token(user))


@api.route('/users/me')
@login_required
def me(principal):
    return jsonify(principal.to_dict())


@api.route('/users/me/main-baker')
@role_required('junior_baker')
def my_main_baker(principal):
    baker = teams.get_main_baker_for(principal.id)
    return jsonify(baker.to_dict() if baker else None)


# ---------- catalog ----------

@api.route('/products')
def list_products():
    products = catalog.list_products(request.args.get('category'))
    return jsonify([p.to_dict() for p in products])


@api.route('/products/<int:pid>')
def product_detail(pid):
    return jsonify(catalog.get_product(pid).to_dict())


@api.route('/products', methods=['POST'])
@role_required('main_baker')
def add_product(principal):
    product = catalog.create_product(principal, json_body())
    return jsonify(product.to_dict()), 201


@api.route('/admin/products')
@role_required('admin')
def admin_products(principal):
    return jsonify([p.to_dict() for p in catalog.list_products()])


@api.route('/admin/products/<int:pid>', methods=['PATCH'])
@role_required('admin')
def admin_update_product(pid, principal):
    return jsonify(catalog.update_product(principal, pid, json_body()).to_dict())


@api.route('/admin/products/<int:pid>', methods=['DELETE'])
@role_required('admin')
def admin_delete_product(pid, principal):
    catalog.delete_product(principal, pid)
    return jsonify(message='Product deleted')


@api.route('/custom-cakes', methods=['POST'])
@login_required
def create_custom_cake(principal):
    cake = catalog.create_custom_cake(principal, json_body())
    return jsonify(cake.to_dict()), 201


@api.route('/custom-cakes')
@login_required
def my_custom_cakes(principal):
    return jsonify([c.to_dict() for c in catalog.list_custom_cakes(principal)])


# ---------- orders ----------

@api.route('/orders')
@login_required
def list_orders(principal):
    return jsonify([o.to_dict(include_shipping=False) for o in orders.list_orders(principal)])


@api.route('/orders', methods=['POST'])
@login_required
def create_order(principal):
    data = json_body()
    order = orders.create_order(principal, data.get('items'), data.get('shippingInfo'))
    return jsonify(order.to_dict()), 201


@api.route('/orders/<int:oid>')
@login_required
def order_detail(oid, principal):
    return jsonify(orders.get_order(principal, oid).to_dict())


@api.route('/orders/<int:oid>/status', methods=['PATCH'])
@role_required('main_baker', 'junior_baker', 'admin')
def update_order_status(oid, principal):
    status = json_body().get('status')
    if not isinstance(status, str):
        raise ValidationError('status is required')
    order = orders.advance_status(principal, oid, status)
    return jsonify(order.to_dict())


@api.route('/orders/<int:oid>/assign', methods=['PATCH'])
@role_required('main_baker', 'admin')
def assign_order(oid, principal):
    data = json_body()
    order = orders.assign_baker(
        principal, oid,
        main_baker_id=parse_id(data.get('mainBakerId'), 'mainBakerId', required=False),
        junior_baker_id=parse_id(data.get('juniorBakerId'), 'juniorBakerId', required=False),
    )
    return jsonify(order.to_dict())


@api.route('/admin/orders')
@role_required('admin')
def admin_orders(principal):
    return jsonify([o.to_dict(include_shipping=False, include_customer=True)
                    for o in orders.list_orders(principal)])


@api.route('/orders/track/<order_code>')
def track_order(order_code):
    return jsonify(orders.track_order(order_code))


# ---------- bakers & applications ----------

@api.route('/main-bakers')
def main_bakers():
    return jsonify([u.to_dict() for u in teams.list_main_bakers()])


@api.route('/main-bakers/<int:uid>/team')
@login_required
def main_baker_team(uid, principal):
    return jsonify([u.to_dict() for u in teams.get_team_for_main_baker(uid)])


@api.route('/baker-applications', methods=['POST'])
@login_required
def submit_application(principal):
    data = json_body()
    application = teams.submit_application(
        principal,
        parse_id(data.get('mainBakerId'), 'mainBakerId', required=False),
        data.get('reason'),
    )
    return jsonify(application.to_dict()), 201


@api.route('/baker-applications/mine')
@login_required
def my_applications(principal):
    return jsonify([a.to_dict() for a in teams.list_my_applications(principal)])


@api.route('/admin/baker-applications')
@role_required('admin')
def admin_applications(principal):
    applications = teams.list_applications(principal, request.args.get('status'))
    return jsonify([a.to_dict() for a in applications])


@api.route('/admin/baker-applications/<int:aid>/approve', methods=['PATCH'])
@role_required('admin')
def approve_application(aid, principal):
    user, team, application = teams.approve_application(principal, aid)
    return jsonify(user=user.to_dict(),
                   team=team.to_dict() if team else None,
                   application=application.to_dict())


@api.route('/admin/baker-applications/<int:aid>/reject', methods=['PATCH'])
@role_required('admin')
def reject_application(aid, principal):
    return jsonify(teams.reject_application(principal, aid).to_dict())


@api.route('/bakers/<int:uid>/earnings')
@login_required
def baker_earnings(uid, principal):
    if principal.role != 'admin' and principal.id != uid:
        raise AuthorizationError('Not allowed to view these earnings')
    return jsonify(earnings.get_baker_earnings(uid))


# ---------- chat ----------

@api.route('/chats/<int:oid>')
@login_required
def order_messages(oid, principal):
    return jsonify([m.to_dict() for m in chat.list_messages(principal, oid, _after_arg())])


@api.route('/chats', methods=['POST'])
@login_required
def post_message(principal):
    data = json_body()
    message = chat.post_message(principal, parse_id(data.get('orderId'), 'orderId'), data.get('message'))
    return jsonify(message.to_dict()), 201


@api.route('/chats/<int:oid>/stream')
@login_required
def stream_order_messages(oid, principal):
    after = request.headers.get('Last-Event-ID') or request.args.get('after')
    events = chat.stream_messages(principal, oid, parse_id(after, 'after', required=False))
    return Response(stream_with_context(events), mimetype='text/event-stream',
                    headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'})


@api.route('/chats/read', methods=['PATCH'])
@login_required
def mark_messages_read(principal):
    changed = chat.mark_read(principal, json_body().get('chatIds'))
    return jsonify(success=True, updated=changed)


@api.route('/direct-messages', methods=['POST'])
@login_required
def post_direct_message(principal):
    data = json_body()
    message = chat.post_direct_message(principal, parse_id(data.get('receiverId'), 'receiverId'),
                                       data.get('message'))
    return jsonify(message.to_dict()), 201


@api.route('/direct-messages/<int:uid>')
@login_required
def direct_conversation(uid, principal):
    return jsonify([m.to_dict() for m in chat.list_direct_messages(principal, uid)])


# ---------- reviews ----------

@api.route('/reviews', methods=['POST'])
@login_required
def submit_review(principal):
    data = json_body()
    review = reviews.submit_review(principal, parse_id(data.get('orderId'), 'orderId'),
                                   data.get('rating'), data.get('comment'))
    return jsonify(review.to_dict()), 201


@api.route('/reviews/order/<int:oid>')
def order_reviews(oid):
    return jsonify([r.to_dict() for r in reviews.list_reviews_for_order(oid)])


@api.route('/reviews/baker/<int:uid>')
def baker_reviews(uid):
    rating = reviews.get_baker_rating(uid)
    return jsonify(reviews=[r.to_dict() for r in reviews.list_reviews_for_baker(uid)],
                   averageRating=rating['average'], count=rating['count'])


@api.route('/reviews/can-review/<int:oid>')
@login_required
def can_review(oid, principal):
    return jsonify(canReview=reviews.can_review(principal, oid))


@api.route('/reviews/user/<int:uid>')
@login_required
def user_reviews(uid, principal):
    return jsonify([r.to_dict() for r in reviews.list_reviews_by_user(principal, uid)])


@api.route('/reviews')
@role_required('admin')
def all_reviews(principal):
    return jsonify(reviews.list_all_reviews(principal))


# ---------- dashboards & admin ----------

@api.route('/dashboard/customer')
@login_required
def customer_dashboard(principal):
    return jsonify(dashboard.customer_stats(principal))


@api.route('/dashboard/junior-baker')
@role_required('junior_baker')
def junior_baker_dashboard(principal):
    return jsonify(dashboard.junior_baker_stats(principal))


@api.route('/dashboard/main-baker')
@role_required('main_baker')
def main_baker_dashboard(principal):
    return jsonify(dashboard.main_baker_stats(principal))


@api.route('/admin/stats')
@role_required('admin')
def admin_stats(principal):
    return jsonify(dashboard.admin_stats(principal))


@api.route('/admin/users')
@role_required('admin')
def admin_users(principal):
    return jsonify([u.to_dict() for u in dashboard.list_users(principal)])
