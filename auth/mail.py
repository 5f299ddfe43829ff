"""
auth/mail.py -- Outbound email collaborator.

Gatehouse renders password-reset and verification emails but does not
deliver them. Anything with a send(to, subject, html) method can be placed on
app.state.mailer; the default LoggingMailer records the envelope only. The
body carries a live token and is never logged.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("gatehouse.mail")


class Mailer(Protocol):
    def send(self, to: str, subject: str, html: str) -> None: ...


class LoggingMailer:
    """Mailer that logs recipient and subject and drops the message."""

    def send(self, to: str, subject: str, html: str) -> None:
        logger.info("Email queued to=%s subject=%r (%d bytes)", to, subject, len(html))
