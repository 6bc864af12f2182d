# bakery/earnings.py
from decimal import Decimal

from flask import current_app

from .models import BakerEarning, db

CENTS = Decimal('0.01')
JUNIOR_SHARE = Decimal('70.00')
MAIN_SHARE_WITH_JUNIOR = Decimal('30.00')
MAIN_SHARE_SOLO = Decimal('100.00')


def _share(total, percentage):
    return (total * percentage / 100).quantize(CENTS)


def distribute_order_payment(order):
    """Record baker earnings for a delivered order.

    Adds rows to the current session without committing; the caller commits
    them together with the status change. Returns None when nothing was
    distributed (not delivered, no main baker, or already distributed).
    """
    if order.status != 'delivered' or not order.main_baker_id:
        return None
    if BakerEarning.query.filter_by(order_id=order.id).first():
        return None

    total = Decimal(order.total_amount)
    distribution = {'orderId': order.id, 'totalAmount': float(total)}
    if order.junior_baker_id:
        junior_amount = _share(total, JUNIOR_SHARE)
        # main baker takes the remainder so the split always sums to the total
        main_amount = total - junior_amount
        db.session.add(BakerEarning(order_id=order.id, baker_id=order.junior_baker_id,
                                    baker_type='junior_baker', amount=junior_amount,
                                    percentage=JUNIOR_SHARE))
        db.session.add(BakerEarning(order_id=order.id, baker_id=order.main_baker_id,
                                    baker_type='main_baker', amount=main_amount,
                                    percentage=MAIN_SHARE_WITH_JUNIOR))
        distribution['juniorBakerAmount'] = float(junior_amount)
    else:
        main_amount = total
        db.session.add(BakerEarning(order_id=order.id, baker_id=order.main_baker_id,
                                    baker_type='main_baker', amount=main_amount,
                                    percentage=MAIN_SHARE_SOLO))
    distribution['mainBakerAmount'] = float(main_amount)
    current_app.logger.info('Distributed payment for order %s: %s', order.id, distribution)
    return distribution


def get_baker_earnings(baker_id):
    rows = (BakerEarning.query.filter_by(baker_id=baker_id)
            .order_by(BakerEarning.created_at, BakerEarning.id).all())
    total = sum((Decimal(row.amount) for row in rows), Decimal('0.00'))
    return {
        'bakerId': baker_id,
        'total': float(total),
        'breakdown': [row.to_dict() for row in rows],
    }
