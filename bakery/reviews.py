# bakery/reviews.py
from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from .errors import (AuthorizationError, DuplicateReviewError, InvalidStateError, NotFoundError,
                     ValidationError)
from .models import Order, Review, db


def _parse_rating(rating):
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError('rating must be an integer from 1 to 5')
    return rating


def can_review(principal, order_id):
    order = db.session.get(Order, order_id)
    if order is None or order.status != 'delivered' or order.user_id != principal.id:
        return False
    return Review.query.filter_by(order_id=order_id).first() is None


def submit_review(principal, order_id, rating, comment=None):
    rating = _parse_rating(rating)
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError('Order not found')
    if order.status != 'delivered' or order.user_id != principal.id:
        raise InvalidStateError('Only the customer can review an order, and only after delivery')
    if Review.query.filter_by(order_id=order.id).first():
        raise DuplicateReviewError()
    if comment is not None and not isinstance(comment, str):
        raise ValidationError('comment must be text')

    review = Review(
        order_id=order.id,
        user_id=principal.id,
        junior_baker_id=order.junior_baker_id,
        rating=rating,
        comment=(comment or '').strip() or None,
        is_verified_purchase=True,
    )
    db.session.add(review)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateReviewError()
    current_app.logger.info('Order %s reviewed by user %s with rating %s', order.id, principal.id, rating)
    return review


def _baker_filter(baker_id):
    return or_(Order.junior_baker_id == baker_id, Order.main_baker_id == baker_id)


def get_baker_rating(baker_id):
    average, count = (db.session.query(func.avg(Review.rating), func.count(Review.id))
                      .join(Order, Review.order_id == Order.id)
                      .filter(_baker_filter(baker_id))
                      .one())
    return {
        'average': round(float(average), 2) if average is not None else 0.0,
        'count': count,
    }


def list_reviews_for_baker(baker_id):
    return (Review.query.join(Order, Review.order_id == Order.id)
            .filter(_baker_filter(baker_id))
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all())


def list_reviews_for_order(order_id):
    return Review.query.filter_by(order_id=order_id).all()


def list_reviews_by_user(principal, user_id):
    if principal.role != 'admin' and principal.id != user_id:
        raise AuthorizationError('Not allowed to view these reviews')
    return (Review.query.filter_by(user_id=user_id)
            .order_by(Review.created_at.desc(), Review.id.desc()).all())


def list_all_reviews(principal):
    """Every review with its author and junior baker, newest first."""
    if principal.role != 'admin':
        raise AuthorizationError('Only admins can list all reviews')
    rows = Review.query.order_by(Review.created_at.desc(), Review.id.desc()).all()
    listing = []
    for review in rows:
        data = review.to_dict()
        data['userFullName'] = review.author.full_name
        data['userEmail'] = review.author.email
        data['juniorBakerFullName'] = review.junior_baker.full_name if review.junior_baker else None
        listing.append(data)
    return listing
