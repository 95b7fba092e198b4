# Overview: Service-layer operations for user governance; role/status changes and removal inside one company.

"""
User Governance Engine

WHY: Admins and managers manage the people in their own company. Every change
is checked against the role hierarchy, written together with an audit row in
one transaction, and only then announced to the affected user.

RULES (checked in this order, after input validation):
1. Target must be a user of the actor's company        -> NotFound
2. Nobody changes their own account here               -> SelfModificationNotAllowed
3. Actor must strictly outrank the target              -> InsufficientPermission
4. New role must be at or below the actor's own level  -> CannotEscalate

SIDE EFFECTS:
- Audit row and user update share one transaction
- Deactivation and removal revoke the target's sessions in that transaction
- Status-change notices go out after commit; a failed notice is logged and
  never turns a committed change into a failure
"""

from __future__ import annotations

import logging

from ..errors import ErrorKind, Result, ServiceError
from ..models import User, UserAuditLog
from ..models.audit import (
    AUDIT_ACTION_REMOVAL,
    AUDIT_ACTION_ROLE_UPDATE,
    AUDIT_ACTION_STATUS_UPDATE,
)
from ..models.tenancy import USER_STATUS_ACTIVE, USER_STATUS_REMOVED
from ..roles import assignable_roles, can_assign_role, can_manage
from ..time_utils import utcnow
from ..validation import ValidationError, clean_governance_update, clean_reason
from . import session_service
from .notification_service import Notifier
from .transactions import commit_then_notify, lock_for_update

AUDIT_LOG_LIMIT = 100


class GovernanceEngine:
    def __init__(self, session, notifier: Notifier, logger: logging.Logger | None = None):
        self.session = session
        self.notifier = notifier
        self.log = logger or logging.getLogger(__name__)

    def update_user_role_and_status(
        self,
        principal,
        target_user_id: int,
        new_role: str,
        new_status: str,
        reason: str,
    ) -> Result:
        """
        Change a user's role and status.

        The audit action is role_update when the role changes, otherwise
        status_update. A notice is sent only when the status actually changed.

        Returns Result[User].
        """
        try:
            new_role, new_status, reason = clean_governance_update(new_role, new_status, reason)
        except ValidationError as exc:
            return Result.fail(ErrorKind.VALIDATION_FAILED, str(exc))

        status_changed = []

        def _mutate():
            target = self._load_manageable_target(principal, target_user_id)

            if not can_assign_role(principal.role, new_role):
                raise ServiceError(ErrorKind.CANNOT_ESCALATE, "Cannot assign a role higher than your own")

            previous = {"role": target.role, "status": target.status}
            action = AUDIT_ACTION_ROLE_UPDATE if new_role != target.role else AUDIT_ACTION_STATUS_UPDATE

            self._write_audit(
                target,
                principal,
                action,
                previous=previous,
                new={"role": new_role, "status": new_status},
                reason=reason,
            )

            target.role = new_role
            target.status = new_status
            target.updated_at = utcnow()

            if new_status != USER_STATUS_ACTIVE and previous["status"] == USER_STATUS_ACTIVE:
                session_service.revoke_all_user_sessions(
                    target.id, reason=f"User status changed to {new_status}", session=self.session
                )

            if previous["status"] != new_status:
                status_changed.append(True)
            return target

        def _notify(target):
            if status_changed:
                self.notifier.send_status_change_notice(target.email, target.status, reason)

        result = commit_then_notify(
            self.session, _mutate, _notify, description="update user role/status", log=self.log
        )
        if result.ok:
            self.log.info(
                "User %s set to role=%s status=%s by user %s",
                target_user_id, new_role, new_status, principal.user_id,
            )
        return result

    def remove_user(self, principal, target_user_id: int, reason: str) -> Result:
        """
        Soft-delete a user: status becomes 'removed', the row and its history stay.

        Returns Result[User].
        """
        try:
            reason = clean_reason(reason)
        except ValidationError as exc:
            return Result.fail(ErrorKind.VALIDATION_FAILED, str(exc))

        def _mutate():
            target = self._load_manageable_target(principal, target_user_id)

            self._write_audit(
                target,
                principal,
                AUDIT_ACTION_REMOVAL,
                previous={"role": target.role, "status": target.status},
                new={"role": target.role, "status": USER_STATUS_REMOVED},
                reason=reason,
            )

            target.status = USER_STATUS_REMOVED
            target.updated_at = utcnow()
            session_service.revoke_all_user_sessions(target.id, reason="User removed", session=self.session)
            return target

        def _notify(target):
            self.notifier.send_status_change_notice(target.email, USER_STATUS_REMOVED, reason)

        result = commit_then_notify(self.session, _mutate, _notify, description="remove user", log=self.log)
        if result.ok:
            self.log.info("User %s removed by user %s", target_user_id, principal.user_id)
        return result

    def list_audit_logs(self, principal, limit: int = AUDIT_LOG_LIMIT) -> Result:
        """Audit rows whose target is currently a user of the principal's company, newest first."""
        if not principal.company_id:
            return Result.fail(ErrorKind.NO_COMPANY_ASSOCIATION, "User not associated with any company")

        logs = (
            self.session.query(UserAuditLog)
            .join(User, UserAuditLog.target_user_id == User.id)
            .filter(User.company_id == principal.company_id)
            .order_by(UserAuditLog.created_at.desc(), UserAuditLog.id.desc())
            .limit(limit)
            .all()
        )
        return Result.success(logs)

    def list_company_users(self, principal, include_removed: bool = False) -> Result:
        if not principal.company_id:
            return Result.fail(ErrorKind.NO_COMPANY_ASSOCIATION, "User not associated with any company")

        query = self.session.query(User).filter(User.company_id == principal.company_id)
        if not include_removed:
            query = query.filter(User.status != USER_STATUS_REMOVED)
        return Result.success(query.order_by(User.id).all())

    def assignable_roles(self, principal) -> list[dict]:
        return assignable_roles(principal.role)

    def _load_manageable_target(self, principal, target_user_id: int) -> User:
        if not principal.company_id:
            raise ServiceError(ErrorKind.NO_COMPANY_ASSOCIATION, "User not associated with any company")

        target = lock_for_update(
            self.session.query(User).filter(
                User.id == target_user_id,
                User.company_id == principal.company_id,
            )
        ).first()
        if target is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "User not found")

        if target.id == principal.user_id:
            raise ServiceError(ErrorKind.SELF_MODIFICATION_NOT_ALLOWED, "You cannot modify your own account")

        if not can_manage(principal.role, target.role):
            raise ServiceError(
                ErrorKind.INSUFFICIENT_PERMISSION,
                "You can only manage users with a lower role than your own",
            )

        return target

    def _write_audit(self, target: User, principal, action: str, *, previous: dict, new: dict, reason: str) -> UserAuditLog:
        entry = UserAuditLog(
            target_user_id=target.id,
            performed_by_id=principal.user_id,
            action=action,
            changes={"previous": previous, "new": new},
            reason=reason,
            created_at=utcnow(),
        )
        self.session.add(entry)
        return entry
