# Overview: Pytest coverage for user governance (role/status changes, removal, audit, notices).

"""
User Governance Tests

Verifies:
- Hierarchy checks: strict outranking to manage, no escalation above own level
- Self-modification and cross-company targets are rejected
- Audit row and user change are written together
- Status-change notices go out after commit, and only when status changed
- A failing notifier never turns a committed change into a failure
"""

import pytest

from dealernet.errors import ErrorKind
from dealernet.models import SessionToken, User, UserAuditLog
from dealernet.services import session_service
from dealernet.services.governance_service import GovernanceEngine
from dealernet.services.notification_service import (
    STATUS_CHANGE_SUBJECT,
    LogNotifier,
    MailNotifier,
    build_notifier,
)

from conftest import FailingNotifier, issue_token, principal_of


def _audit_rows(db_session, target_id):
    return (
        db_session.query(UserAuditLog)
        .filter_by(target_user_id=target_id)
        .order_by(UserAuditLog.id)
        .all()
    )


# =============================================================================
# HIERARCHY
# =============================================================================

class TestHierarchy:
    def test_staff_cannot_manage_manager(self, governance, staff_a, manager_a):
        result = governance.update_user_role_and_status(
            principal_of(staff_a), manager_a.id, "manager", "inactive", "not allowed"
        )
        assert result.kind == ErrorKind.INSUFFICIENT_PERMISSION

    def test_manager_cannot_manage_peer(self, governance, manager_a, make_user, company_a):
        other_manager = make_user(company_a, "manager")
        result = governance.update_user_role_and_status(
            principal_of(manager_a), other_manager.id, "staff", "active", "demotion"
        )
        assert result.kind == ErrorKind.INSUFFICIENT_PERMISSION

    def test_manager_cannot_escalate_to_admin(self, db_session, governance, manager_a, staff_a):
        result = governance.update_user_role_and_status(
            principal_of(manager_a), staff_a.id, "admin", "active", "promotion"
        )

        assert result.kind == ErrorKind.CANNOT_ESCALATE
        db_session.expire_all()
        assert db_session.get(User, staff_a.id).role == "staff"
        assert _audit_rows(db_session, staff_a.id) == []

    def test_manager_promotes_staff_to_manager(self, db_session, governance, manager_a, staff_a):
        result = governance.update_user_role_and_status(
            principal_of(manager_a), staff_a.id, "manager", "active", "Team lead"
        )

        assert result.ok
        assert result.value.role == "manager"

    def test_admin_can_assign_admin(self, governance, admin_a, manager_a):
        result = governance.update_user_role_and_status(
            principal_of(admin_a), manager_a.id, "admin", "active", "Co-owner"
        )
        assert result.ok
        assert result.value.role == "admin"

    def test_self_modification_rejected(self, governance, admin_a):
        result = governance.update_user_role_and_status(
            principal_of(admin_a), admin_a.id, "admin", "inactive", "taking a break"
        )
        assert result.kind == ErrorKind.SELF_MODIFICATION_NOT_ALLOWED

    def test_self_removal_rejected(self, governance, admin_a):
        result = governance.remove_user(principal_of(admin_a), admin_a.id, "leaving")
        assert result.kind == ErrorKind.SELF_MODIFICATION_NOT_ALLOWED

    def test_other_company_user_is_not_found(self, db_session, governance, admin_a, staff_b):
        result = governance.update_user_role_and_status(
            principal_of(admin_a), staff_b.id, "staff", "inactive", "cross company"
        )

        assert result.kind == ErrorKind.NOT_FOUND
        db_session.expire_all()
        assert db_session.get(User, staff_b.id).status == "active"

    def test_missing_user_is_not_found(self, governance, admin_a):
        result = governance.remove_user(principal_of(admin_a), 424242, "does not exist")
        assert result.kind == ErrorKind.NOT_FOUND


# =============================================================================
# INPUT VALIDATION
# =============================================================================

class TestValidation:
    @pytest.mark.parametrize("reason", [None, "", "  ", "ab", "x" * 501])
    def test_reason_length(self, governance, admin_a, staff_a, reason):
        result = governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "staff", "inactive", reason
        )
        assert result.kind == ErrorKind.VALIDATION_FAILED

    def test_unknown_role(self, governance, admin_a, staff_a):
        result = governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "owner", "active", "new role"
        )
        assert result.kind == ErrorKind.VALIDATION_FAILED

    def test_removed_is_not_a_settable_status(self, governance, admin_a, staff_a):
        result = governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "staff", "removed", "use removal instead"
        )
        assert result.kind == ErrorKind.VALIDATION_FAILED

    def test_remove_requires_reason(self, notifier, governance, admin_a, staff_a):
        result = governance.remove_user(principal_of(admin_a), staff_a.id, "no")
        assert result.kind == ErrorKind.VALIDATION_FAILED
        assert notifier.sent == []


# =============================================================================
# AUDIT AND SESSIONS
# =============================================================================

class TestAuditTrail:
    def test_role_change_audit_row(self, db_session, governance, admin_a, staff_a):
        governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "manager", "active", "Promoted"
        )

        (row,) = _audit_rows(db_session, staff_a.id)
        assert row.action == "role_update"
        assert row.performed_by_id == admin_a.id
        assert row.reason == "Promoted"
        assert row.changes == {
            "previous": {"role": "staff", "status": "active"},
            "new": {"role": "manager", "status": "active"},
        }

    def test_status_only_change_is_status_update(self, db_session, governance, admin_a, staff_a):
        governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "staff", "inactive", "On leave"
        )

        (row,) = _audit_rows(db_session, staff_a.id)
        assert row.action == "status_update"
        assert row.changes["new"]["status"] == "inactive"

    def test_deactivation_revokes_sessions(self, db_session, governance, admin_a, staff_a):
        token = issue_token(db_session, staff_a)

        result = governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "staff", "inactive", "On leave"
        )

        assert result.ok
        assert session_service.verify_token(token) is None

    def test_role_change_keeps_sessions(self, db_session, governance, admin_a, staff_a):
        token = issue_token(db_session, staff_a)

        governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "manager", "active", "Promoted"
        )

        assert session_service.verify_token(token) is not None

    def test_remove_user(self, db_session, governance, admin_a, staff_a):
        issue_token(db_session, staff_a)

        result = governance.remove_user(principal_of(admin_a), staff_a.id, "Left the company")

        assert result.ok
        db_session.expire_all()
        removed = db_session.get(User, staff_a.id)
        assert removed is not None
        assert removed.status == "removed"
        active_sessions = db_session.query(SessionToken).filter_by(
            user_id=staff_a.id, is_revoked=False
        ).count()
        assert active_sessions == 0
        (row,) = _audit_rows(db_session, staff_a.id)
        assert row.action == "removal"
        assert row.changes["new"]["status"] == "removed"

    def test_list_audit_logs_is_company_scoped_newest_first(
        self, db_session, governance, admin_a, staff_a, manager_a, admin_b, staff_b
    ):
        principal = principal_of(admin_a)
        governance.update_user_role_and_status(principal, staff_a.id, "staff", "inactive", "first")
        governance.update_user_role_and_status(principal, manager_a.id, "manager", "inactive", "second")
        governance.update_user_role_and_status(principal_of(admin_b), staff_b.id, "staff", "inactive", "other")

        logs = governance.list_audit_logs(principal).value

        assert [log.reason for log in logs] == ["second", "first"]

    def test_list_company_users_excludes_removed(self, governance, admin_a, staff_a, manager_a, staff_b):
        principal = principal_of(admin_a)
        governance.remove_user(principal, staff_a.id, "Left the company")

        visible = [u.id for u in governance.list_company_users(principal).value]
        everyone = [u.id for u in governance.list_company_users(principal, include_removed=True).value]

        assert staff_a.id not in visible
        assert manager_a.id in visible
        assert staff_b.id not in everyone
        assert staff_a.id in everyone


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class TestNotifications:
    def test_status_change_notifies(self, notifier, governance, admin_a, staff_a):
        governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "staff", "inactive", "On leave"
        )
        assert notifier.sent == [("staff@acme.test", "inactive", "On leave")]

    def test_role_only_change_does_not_notify(self, notifier, governance, admin_a, staff_a):
        governance.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "manager", "active", "Promoted"
        )
        assert notifier.sent == []

    def test_removal_always_notifies(self, notifier, governance, admin_a, staff_a):
        governance.remove_user(principal_of(admin_a), staff_a.id, "Left the company")
        assert notifier.sent == [("staff@acme.test", "removed", "Left the company")]

    def test_failed_authorization_sends_nothing(self, notifier, governance, staff_a, manager_a):
        governance.update_user_role_and_status(
            principal_of(staff_a), manager_a.id, "manager", "inactive", "nope"
        )
        assert notifier.sent == []

    def test_failing_notifier_does_not_undo_commit(self, db_session, admin_a, staff_a):
        failing = FailingNotifier()
        engine = GovernanceEngine(db_session, failing)

        result = engine.update_user_role_and_status(
            principal_of(admin_a), staff_a.id, "staff", "inactive", "On leave"
        )

        assert result.ok
        assert failing.attempts == 1
        db_session.expire_all()
        assert db_session.get(User, staff_a.id).status == "inactive"
        assert len(_audit_rows(db_session, staff_a.id)) == 1

    def test_mail_notifier_builds_message(self, app):
        class FakeMail:
            def __init__(self):
                self.outbox = []

            def send(self, message):
                self.outbox.append(message)

        fake = FakeMail()
        MailNotifier(fake, sender="noreply@dealernet.test").send_status_change_notice(
            "staff@acme.test", "inactive", "On leave"
        )

        (message,) = fake.outbox
        assert message.subject == STATUS_CHANGE_SUBJECT
        assert message.recipients == ["staff@acme.test"]
        assert "inactive" in message.body
        assert "On leave" in message.body

    def test_build_notifier_follows_mail_flag(self):
        assert isinstance(build_notifier({"MAIL_ENABLED": False}), LogNotifier)
        mailer = build_notifier({"MAIL_ENABLED": True, "MAIL_DEFAULT_SENDER": "noreply@dealernet.test"})
        assert isinstance(mailer, MailNotifier)
        assert mailer.sender == "noreply@dealernet.test"
