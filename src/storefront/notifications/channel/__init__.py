"""Email channel registry.

Uses the fake adapter by default; ``EMAIL_ADAPTER=smtp`` selects the SMTP
adapter configured from the ``SMTP_*`` environment variables.
"""

import os

from storefront.notifications.channel.email_port import EmailPort

_email_channel: EmailPort | None = None


def get_email_channel() -> EmailPort:
    """Return the configured email adapter (singleton)."""
    global _email_channel
    if _email_channel is None:
        if os.environ.get("EMAIL_ADAPTER", "fake") == "smtp":
            from storefront.notifications.channel.smtp_email import SmtpEmailAdapter

            _email_channel = SmtpEmailAdapter(
                host=os.environ.get("SMTP_HOST", "localhost"),
                port=int(os.environ.get("SMTP_PORT", "587")),
                username=os.environ.get("SMTP_USERNAME") or None,
                password=os.environ.get("SMTP_PASSWORD") or None,
                sender=os.environ.get("SMTP_FROM", "orders@localhost"),
                use_tls=os.environ.get("SMTP_USE_TLS", "true").lower() != "false",
            )
        else:
            from storefront.notifications.channel.fake_email import FakeEmailAdapter

            _email_channel = FakeEmailAdapter()
    return _email_channel


def set_email_channel(channel: EmailPort) -> None:
    global _email_channel
    _email_channel = channel


def reset_channels():
    """Reset the channel singleton (useful for testing)."""
    global _email_channel
    _email_channel = None
