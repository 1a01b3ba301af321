"""
Delivery results for JML Lite notification channels.
"""

from typing import Optional


class DeliveryResult:
    """
    Outcome of one post to a webhook channel.

    ``status_code`` is None when no HTTP response came back (validation or
    transport failure).
    """

    def __init__(self, success: bool, error: Optional[str] = None, status_code: Optional[int] = None,
                 channel: str = "primary"):
        self.success = success
        self.error = error
        self.status_code = status_code
        self.channel = channel

    @property
    def reached_endpoint(self) -> bool:
        """True when the webhook endpoint answered, whatever the status."""
        return self.status_code is not None

    def audit_details(self) -> dict:
        return {
            "channel": self.channel,
            "statusCode": self.status_code,
            "success": self.success,
            "error": self.error,
        }

    def __bool__(self):
        return self.success

    def __str__(self):
        status = f"HTTP {self.status_code}" if self.reached_endpoint else "no response"
        return f"{'✓' if self.success else '✗'} {self.channel} ({status}){': ' + self.error if self.error else ''}"

    def __repr__(self):
        return (f"DeliveryResult(success={self.success!r}, status_code={self.status_code!r}, "
                f"channel={self.channel!r}, error={self.error!r})")
