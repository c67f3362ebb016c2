"""
Outbound notifications.

Only the invitation message exists today. Delivery is left to whatever
dispatcher the app is wired with; the default one writes the rendered
message to the log so local setups can pick up join links.
"""

from __future__ import annotations

from typing import Optional, Protocol

import structlog

log = structlog.get_logger()


class InvitationNotifier(Protocol):
    async def send_invitation(
        self,
        to: str,
        organization_name: str,
        invited_by_name: Optional[str],
        join_link: str,
        role: str,
    ) -> bool:
        """Deliver an invitation. Returns False when delivery did not happen."""
        ...


def render_invitation(
    organization_name: str,
    invited_by_name: Optional[str],
    join_link: str,
    role: str,
) -> tuple[str, str]:
    """Subject and plain-text body of an invitation message."""
    inviter = invited_by_name or "A teammate"
    subject = f"You're invited to join {organization_name} on LeadFlow"
    body = (
        f"{inviter} invited you to join {organization_name} as {role}.\n\n"
        f"Accept the invitation: {join_link}\n\n"
        "The link expires in 7 days and can be used once."
    )
    return subject, body


class LogNotifier:
    """Writes invitation messages to the structured log."""

    async def send_invitation(
        self,
        to: str,
        organization_name: str,
        invited_by_name: Optional[str],
        join_link: str,
        role: str,
    ) -> bool:
        subject, body = render_invitation(organization_name, invited_by_name, join_link, role)
        log.info("notification.invitation", to=to, subject=subject, body=body)
        return True


_notifier: InvitationNotifier = LogNotifier()


def get_notifier() -> InvitationNotifier:
    """Dependency returning the configured dispatcher (overridden in tests)."""
    return _notifier
