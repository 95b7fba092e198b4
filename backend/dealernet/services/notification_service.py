# Overview: Outbound notices to users; status-change mail after governance commits.

"""
Notification Service

Notifiers are handed to the governance engine at construction time. They are
only ever called after the surrounding transaction committed, and the caller
logs and discards anything they raise.

- MailNotifier: sends through Flask-Mail (MAIL_ENABLED=true)
- LogNotifier: writes the notice to the log (development, tests)
"""

from __future__ import annotations

import logging

from flask_mail import Message

from ..extensions import mail

logger = logging.getLogger(__name__)


STATUS_CHANGE_SUBJECT = "Your account status has changed"


def render_status_change_body(status: str, reason: str) -> str:
    return (
        "Hello,\n\n"
        f"Your account status is now: {status}.\n"
        f"Reason: {reason}\n\n"
        "If you believe this is a mistake, contact your company administrator.\n"
    )


class Notifier:
    """Interface for status-change notices."""

    def send_status_change_notice(self, email: str, status: str, reason: str) -> None:
        raise NotImplementedError


class MailNotifier(Notifier):
    def __init__(self, mail_ext=None, sender: str | None = None):
        self.mail = mail_ext or mail
        self.sender = sender

    def send_status_change_notice(self, email: str, status: str, reason: str) -> None:
        msg = Message(
            STATUS_CHANGE_SUBJECT,
            recipients=[email],
            sender=self.sender,
            body=render_status_change_body(status, reason),
        )
        self.mail.send(msg)
        logger.info("Status change notice mailed to %s (status=%s)", email, status)


class LogNotifier(Notifier):
    def send_status_change_notice(self, email: str, status: str, reason: str) -> None:
        logger.info("Status change notice for %s: status=%s reason=%s", email, status, reason)


def build_notifier(config) -> Notifier:
    """Pick the notifier for an app config mapping."""
    if config.get("MAIL_ENABLED"):
        return MailNotifier(sender=config.get("MAIL_DEFAULT_SENDER"))
    return LogNotifier()
