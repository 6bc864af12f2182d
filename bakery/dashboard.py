# bakery/dashboard.py
"""Read-only aggregates behind the role dashboards and the admin screens."""
from sqlalchemy import func, or_

from . import earnings, reviews, teams
from .errors import AuthorizationError
from .models import Order, Product, User, isoformat_utc, utc_now

OPEN_STATUSES = ('pending', 'processing', 'quality_check')
RECENT_LIMIT = 5
ADMIN_RECENT_LIMIT = 10


def _revenue(query):
    total = query.with_entities(func.sum(Order.total_amount)).scalar()
    return round(float(total or 0), 2)


def _newest(query, limit):
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def _by_deadline(query, limit):
    return query.order_by(Order.deadline, Order.id).limit(limit).all()


def _require_admin(principal):
    if principal.role != 'admin':
        raise AuthorizationError('Admin access required')


def customer_stats(principal):
    mine = Order.query.filter(Order.user_id == principal.id)
    return {
        'totalOrders': mine.count(),
        'pendingOrders': mine.filter(Order.status.in_(('pending', 'processing'))).count(),
        'lifetimeValue': _revenue(mine.filter(Order.status != 'cancelled')),
        'recentOrders': [o.to_dict(include_shipping=False) for o in _newest(mine, RECENT_LIMIT)],
    }


def junior_baker_stats(principal):
    mine = Order.query.filter(Order.junior_baker_id == principal.id)
    assigned = mine.count()
    completed = mine.filter(Order.status.in_(('ready', 'delivered'))).count()
    upcoming = _by_deadline(mine.filter(Order.status.in_(OPEN_STATUSES)), RECENT_LIMIT)
    return {
        'assignedOrders': assigned,
        'inProgressOrders': mine.filter(Order.status == 'processing').count(),
        'qualityCheckOrders': mine.filter(Order.status == 'quality_check').count(),
        'completedOrders': completed,
        'performance': round(completed / assigned * 100, 2) if assigned else 0.0,
        'upcomingTasks': [o.to_dict(include_shipping=False) for o in upcoming],
    }


def main_baker_stats(principal):
    """Counts over orders routed to this main baker plus orders nobody has claimed yet."""
    scope = Order.query.filter(or_(Order.main_baker_id == principal.id,
                                   Order.main_baker_id.is_(None)))
    pending = scope.filter(Order.status == 'pending')
    unassigned = _by_deadline(pending.filter(Order.junior_baker_id.is_(None)), RECENT_LIMIT)
    return {
        'incomingOrders': pending.count(),
        'pendingTasks': scope.filter(Order.status.in_(('processing', 'quality_check'))).count(),
        'teamSize': len(teams.get_team_for_main_baker(principal.id)),
        'averageRating': reviews.get_baker_rating(principal.id)['average'],
        'totalEarnings': earnings.get_baker_earnings(principal.id)['total'],
        'ordersNeedingAssignment': [o.to_dict(include_shipping=False) for o in unassigned],
    }


def admin_stats(principal):
    _require_admin(principal)
    month_start = utc_now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    recent_orders = _newest(Order.query, ADMIN_RECENT_LIMIT)
    recent_users = (User.query.order_by(User.created_at.desc(), User.id.desc())
                    .limit(ADMIN_RECENT_LIMIT).all())
    return {
        'totalUsers': User.query.count(),
        'totalProducts': Product.query.count(),
        'totalOrders': Order.query.count(),
        'totalRevenue': _revenue(Order.query.filter(Order.status != 'cancelled')),
        'pendingOrders': Order.query.filter(Order.status == 'pending').count(),
        'newUsersThisMonth': User.query.filter(User.created_at >= month_start).count(),
        'recentOrders': [{
            'id': order.id,
            'orderId': order.order_code,
            'totalAmount': float(order.total_amount),
            'status': order.status,
            'createdAt': isoformat_utc(order.created_at),
            'userFullName': order.customer.full_name,
        } for order in recent_orders],
        'recentUsers': [user.to_dict() for user in recent_users],
    }


def list_users(principal):
    _require_admin(principal)
    return User.query.order_by(User.created_at.desc(), User.id.desc()).all()
