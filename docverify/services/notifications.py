"""Owner notifications for verification outcomes.

Delivery is an external concern: the pipeline only talks to a
:class:`NotificationChannel`.  Calls are scheduled as background tasks, so a
slow or failing channel never delays or changes a persisted decision.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Protocol

from docverify.domain.document import DocumentStatus
from docverify.schemas.verification import DocumentRecord, VerificationDecision, decision_payload

logger = logging.getLogger(__name__)

SUBJECTS: dict[DocumentStatus, str] = {
    DocumentStatus.APPROVED: "Conforma: Your document was automatically approved",
    DocumentStatus.NEEDS_REVIEW: "Conforma: Your document needs manual review",
    DocumentStatus.REJECTED: "Conforma: Your document was rejected",
    DocumentStatus.PENDING: "Conforma: Document pending review",
    DocumentStatus.EXPIRED: "Conforma: Your document has expired",
}

DOCUMENT_APPROVED = "DOCUMENT_APPROVED"
DOCUMENT_REJECTED = "DOCUMENT_REJECTED"
DOCUMENT_NEEDS_REVIEW = "DOCUMENT_NEEDS_REVIEW"
DOCUMENT_EXPIRED = "DOCUMENT_EXPIRED"
DOCUMENT_EXPIRING_SOON = "DOCUMENT_EXPIRING_SOON"

_FOOTER = "Visit your dashboard to view the decision details and next steps."


class NotificationChannel(Protocol):
    async def send_email(self, to: str, subject: str, text: str, html: str) -> None: ...

    async def create_in_app_notification(
        self, user_id: str, type: str, payload: dict[str, Any],
    ) -> None: ...


class LoggingNotificationChannel:
    """Default channel: writes every notification to the application log."""

    async def send_email(self, to: str, subject: str, text: str, html: str) -> None:
        logger.info("Email to %s: %s", to, subject)

    async def create_in_app_notification(
        self, user_id: str, type: str, payload: dict[str, Any],
    ) -> None:
        logger.info("In-app notification %s for user %s", type, user_id)


def notification_type(status: DocumentStatus) -> str:
    if status == DocumentStatus.APPROVED:
        return DOCUMENT_APPROVED
    if status == DocumentStatus.REJECTED:
        return DOCUMENT_REJECTED
    return DOCUMENT_NEEDS_REVIEW


def decision_message(document: DocumentRecord, decision: VerificationDecision) -> str:
    fields = decision.fields
    lines = [
        f"Document type: {document.type.value}",
        f"AI status: {decision.ai_status.value}",
        f"Confidence: {decision.confidence * 100:.0f}%",
        f"Details: {decision.reason}",
    ]
    if fields.policy_number:
        lines.append(f"Policy/license number: {fields.policy_number}")
    if fields.issuer:
        lines.append(f"Issuer: {fields.issuer}")
    if fields.effective_from:
        lines.append(f"Effective from: {fields.effective_from:%a %b %d %Y}")
    if fields.effective_to:
        lines.append(f"Effective to: {fields.effective_to:%a %b %d %Y}")
    return "\n".join(lines)


class Notifier:
    """Schedules notification calls as fire-and-forget tasks."""

    def __init__(self, channel: NotificationChannel | None = None):
        self.channel = channel or LoggingNotificationChannel()
        self._pending: set[asyncio.Task] = set()

    def _schedule(self, label: str, call: Awaitable[None]) -> None:
        task = asyncio.ensure_future(call)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error("Notification %s failed: %s", label, t.exception())

        task.add_done_callback(_done)

    async def flush(self) -> None:
        """Wait for every scheduled notification (tests and shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def decision_made(self, document: DocumentRecord, decision: VerificationDecision) -> None:
        subject = SUBJECTS.get(decision.status, "Conforma: Document update")
        message = decision_message(document, decision)
        if document.owner_email:
            html = "<p>" + message.replace("\n", "<br />") + f"</p><p>{_FOOTER}</p>"
            self._schedule(
                "email",
                self.channel.send_email(
                    document.owner_email, subject, f"{message}\n\n{_FOOTER}", html,
                ),
            )
        self._schedule(
            "in-app",
            self.channel.create_in_app_notification(
                document.user_id,
                notification_type(decision.status),
                {"documentId": document.id, "decision": decision_payload(decision)},
            ),
        )

    def document_expired(self, document: DocumentRecord) -> None:
        expired_on = f"{document.effective_to:%a %b %d %Y}" if document.effective_to else "unknown"
        if document.owner_email:
            text = (
                f"Your {document.type.value.lower()} document expired on {expired_on}.\n"
                "Please upload a new document so we can keep your badges active."
            )
            self._schedule(
                "email",
                self.channel.send_email(
                    document.owner_email,
                    SUBJECTS[DocumentStatus.EXPIRED],
                    text,
                    "<p>" + text.replace("\n", "<br />") + "</p>",
                ),
            )
        self._schedule(
            "in-app",
            self.channel.create_in_app_notification(
                document.user_id,
                DOCUMENT_EXPIRED,
                {
                    "documentId": document.id,
                    "expiredAt": document.effective_to.isoformat() if document.effective_to else None,
                },
            ),
        )

    def document_expiring_soon(self, document: DocumentRecord) -> None:
        expires_on = f"{document.effective_to:%a %b %d %Y}" if document.effective_to else "soon"
        if document.owner_email:
            text = (
                f"Your {document.type.value.lower()} document will expire on {expires_on}.\n"
                "Upload an updated document now to avoid badge removal."
            )
            self._schedule(
                "email",
                self.channel.send_email(
                    document.owner_email,
                    "Conforma: Your document expires soon",
                    text,
                    "<p>" + text.replace("\n", "<br />") + "</p>",
                ),
            )
        self._schedule(
            "in-app",
            self.channel.create_in_app_notification(
                document.user_id,
                DOCUMENT_EXPIRING_SOON,
                {
                    "documentId": document.id,
                    "expiresAt": document.effective_to.isoformat() if document.effective_to else None,
                },
            ),
        )
