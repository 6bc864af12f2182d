# bakery/teams.py
"""Baker applications and team membership.

``BakerTeam`` is the only record of which main baker a junior baker works
under; nothing on ``User`` duplicates it.
"""
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import (AlreadyProcessedError, AuthorizationError, DuplicateApplicationError,
                     InvalidStateError, NotFoundError, ValidationError)
from .models import APPLICATION_STATUSES, BakerApplication, BakerTeam, User, db, utc_now

PROMOTIONS = {
    'customer': 'junior_baker',
    'junior_baker': 'main_baker',
}


def list_main_bakers():
    return User.query.filter_by(role='main_baker').order_by(User.full_name, User.id).all()


def _get_main_baker(main_baker_id):
    baker = db.session.get(User, main_baker_id)
    if baker is None or baker.role != 'main_baker':
        raise NotFoundError('Main baker not found')
    return baker


def get_team_for_main_baker(main_baker_id):
    _get_main_baker(main_baker_id)
    return (User.query
            .join(BakerTeam, BakerTeam.junior_baker_id == User.id)
            .filter(BakerTeam.main_baker_id == main_baker_id,
                    BakerTeam.is_active.is_(True),
                    User.role == 'junior_baker')
            .order_by(User.full_name, User.id)
            .all())


def get_main_baker_for(junior_baker_id):
    return (User.query
            .join(BakerTeam, BakerTeam.main_baker_id == User.id)
            .filter(BakerTeam.junior_baker_id == junior_baker_id,
                    BakerTeam.is_active.is_(True))
            .first())


def is_team_member(main_baker_id, junior_baker_id):
    row = (BakerTeam.query
           .join(User, BakerTeam.junior_baker_id == User.id)
           .filter(BakerTeam.main_baker_id == main_baker_id,
                   BakerTeam.junior_baker_id == junior_baker_id,
                   BakerTeam.is_active.is_(True),
                   User.role == 'junior_baker')
           .first())
    return row is not None


def submit_application(principal, main_baker_id, reason):
    requested_role = PROMOTIONS.get(principal.role)
    if requested_role is None:
        raise ValidationError(f'No promotion is available for role {principal.role}')
    reason = (reason or '').strip() if isinstance(reason, str) else ''
    if not reason:
        raise ValidationError('reason is required')
    if requested_role == 'junior_baker':
        if main_baker_id is None:
            raise ValidationError('mainBakerId is required')
        _get_main_baker(main_baker_id)
    elif main_baker_id is not None:
        _get_main_baker(main_baker_id)

    if BakerApplication.query.filter_by(user_id=principal.id, status='pending').first():
        raise DuplicateApplicationError()

    application = BakerApplication(
        user_id=principal.id,
        main_baker_id=main_baker_id,
        current_role=principal.role,
        requested_role=requested_role,
        reason=reason,
        status='pending',
    )
    db.session.add(application)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with a concurrent submission; the partial unique index caught it
        db.session.rollback()
        raise DuplicateApplicationError()
    current_app.logger.info('User %s applied for %s under main baker %s',
                            principal.id, requested_role, main_baker_id)
    return application


def _get_application(application_id):
    application = db.session.get(BakerApplication, application_id)
    if application is None:
        raise NotFoundError('Application not found')
    return application


def _claim(principal, application, status):
    """Move a pending application to ``status``; only one caller can win."""
    updated = (BakerApplication.query
               .filter(BakerApplication.id == application.id,
                       BakerApplication.status == 'pending')
               .update({'status': status, 'reviewed_by': principal.id, 'updated_at': utc_now()},
                       synchronize_session=False))
    if updated != 1:
        db.session.rollback()
        raise AlreadyProcessedError()
    db.session.refresh(application)


def approve_application(principal, application_id):
    if principal.role != 'admin':
        raise AuthorizationError('Only admins can review applications')
    application = _get_application(application_id)
    if application.status != 'pending':
        raise AlreadyProcessedError()
    _claim(principal, application, 'approved')
    applicant = db.session.get(User, application.user_id)
    if applicant.role != application.current_role:
        db.session.rollback()
        raise InvalidStateError('Applicant role has changed since the application was submitted')
    applicant.role = application.requested_role
    (BakerTeam.query
     .filter(BakerTeam.junior_baker_id == applicant.id, BakerTeam.is_active.is_(True))
     .update({'is_active': False}, synchronize_session=False))
    team = None
    if application.requested_role == 'junior_baker':
        team = BakerTeam(main_baker_id=application.main_baker_id,
                         junior_baker_id=applicant.id, is_active=True)
        db.session.add(team)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    current_app.logger.info('Application %s approved by admin %s; user %s is now %s',
                            application.id, principal.id, applicant.id, applicant.role)
    return applicant, team, application


def reject_application(principal, application_id):
    if principal.role != 'admin':
        raise AuthorizationError('Only admins can review applications')
    application = _get_application(application_id)
    _claim(principal, application, 'rejected')
    db.session.commit()
    current_app.logger.info('Application %s rejected by admin %s', application.id, principal.id)
    return application


def list_applications(principal, status=None):
    if principal.role != 'admin':
        raise AuthorizationError('Only admins can list applications')
    query = BakerApplication.query
    if status:
        if status not in APPLICATION_STATUSES:
            raise ValidationError('Invalid status filter')
        query = query.filter(BakerApplication.status == status)
    return query.order_by(BakerApplication.created_at.desc(), BakerApplication.id.desc()).all()


def list_my_applications(principal):
    return (BakerApplication.query.filter_by(user_id=principal.id)
            .order_by(BakerApplication.created_at.desc(), BakerApplication.id.desc()).all())
