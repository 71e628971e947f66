"""Email channel port: how order confirmations leave the system."""

from abc import ABC, abstractmethod


class EmailPort(ABC):
    @abstractmethod
    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict:
        """Deliver one message to ``to``.

        ``headers`` carries extra message headers such as the order reference
        (``X-Order-Number``) so replies and bounces can be traced to an order.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)

        Adapters report delivery problems in the result rather than raising.
        """
        ...
