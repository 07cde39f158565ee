import logging
from typing import List

from flask import current_app
from sqlalchemy import func

from .exceptions import ConflictError, NotFoundError
from .models import db, User, UserRole, OrganizerApplication, ReviewStatus, tournament_organizers, isoformat
from .permissions import IsSuperAdmin, require
from .profile_service import award_badge

logger = logging.getLogger(__name__)


class OrganizerService:
    """Organizer applications and their review by super admins."""

    def apply(self, user: User, reason: str = None) -> OrganizerApplication:
        application = OrganizerApplication.query.filter_by(user_id=user.id).first()
        if application:
            if application.status == ReviewStatus.PENDING:
                raise ConflictError('Application already pending')
            if application.status == ReviewStatus.APPROVED:
                raise ConflictError('Already an organizer')
            application.reason = reason
            application.status = ReviewStatus.PENDING
            application.reviewed_by = None
        else:
            application = OrganizerApplication(user_id=user.id, reason=reason, status=ReviewStatus.PENDING)
            db.session.add(application)

        db.session.commit()
        logger.info(f"User {user.id} applied to become an organizer")
        return application

    def my_application(self, user: User) -> OrganizerApplication:
        application = OrganizerApplication.query.filter_by(user_id=user.id).first()
        if not application:
            raise NotFoundError('Application', 'No application found')
        return application

    def list_applications(self, admin: User, status: str = None) -> List[OrganizerApplication]:
        require(admin, IsSuperAdmin(), 'Only Super Admin can view applications')
        query = OrganizerApplication.query
        if status:
            query = query.filter_by(status=status)
        return query.order_by(OrganizerApplication.created_at.desc(), OrganizerApplication.id.desc()).all()

    def _get_application(self, application_id: int) -> OrganizerApplication:
        application = db.session.get(OrganizerApplication, application_id)
        if not application:
            raise NotFoundError('Application')
        return application

    def approve(self, admin: User, application_id: int) -> OrganizerApplication:
        require(admin, IsSuperAdmin(), 'Only Super Admin can approve applications')
        application = self._get_application(application_id)

        application.status = ReviewStatus.APPROVED
        application.reviewed_by = admin.id
        application.user.role = UserRole.ORGANISER
        award_badge(application.user, 'ORGANIZER', commit=False)
        db.session.commit()

        logger.info(f"Organizer application {application.id} approved by {admin.id}")
        current_app.notifications.notify_organizer_review(application, True, admin.id)
        return application

    def reject(self, admin: User, application_id: int) -> OrganizerApplication:
        require(admin, IsSuperAdmin(), 'Only Super Admin can reject applications')
        application = self._get_application(application_id)

        application.status = ReviewStatus.REJECTED
        application.reviewed_by = admin.id
        db.session.commit()

        logger.info(f"Organizer application {application.id} rejected by {admin.id}")
        current_app.notifications.notify_organizer_review(application, False, admin.id)
        return application

    def list_organizers(self, admin: User) -> list:
        require(admin, IsSuperAdmin(), 'Only Super Admin can view organizers')
        rows = (
            db.session.query(User, func.count(tournament_organizers.c.tournament_id))
            .outerjoin(tournament_organizers, tournament_organizers.c.user_id == User.id)
            .filter(User.role == UserRole.ORGANISER)
            .group_by(User.id)
            .order_by(User.created_at.desc(), User.id.desc())
            .all()
        )
        return [
            {
                'id': user.id,
                'name': user.name,
                'username': user.username,
                'email': user.email,
                'mobile': user.mobile,
                'createdAt': isoformat(user.created_at),
                'organizedTournaments': count,
            }
            for user, count in rows
        ]

    def block(self, admin: User, user_id: int) -> User:
        require(admin, IsSuperAdmin(), 'Only Super Admin can block organizers')
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError('User')
        user.role = UserRole.PLAYER
        db.session.commit()
        logger.info(f"Organizer {user.id} blocked by {admin.id}")
        return user
