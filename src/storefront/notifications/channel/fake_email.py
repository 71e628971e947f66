"""In-memory email adapter used by default in development and tests."""

from uuid import uuid4

from storefront.notifications.channel.email_port import EmailPort


class FakeEmailAdapter(EmailPort):
    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict:
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"<{uuid4().hex[:16]}@storefront.test>"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "body": body,
                "html_body": html_body,
                "headers": dict(headers or {}),
            }
        )
        return {"message_id": message_id, "status": "sent"}

    def sent_to(self, address: str) -> list[dict]:
        """Messages delivered to ``address``, oldest first."""
        return [email for email in self.sent_emails if email["to"] == address]

    def reset(self):
        self.sent_emails.clear()
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
