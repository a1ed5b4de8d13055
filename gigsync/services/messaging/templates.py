"""
Plain-text message templates for invitation emails.
"""

from dataclasses import dataclass
from datetime import date

RULE = "━" * 38


@dataclass(slots=True, frozen=True)
class RenderedMessage:
    subject: str
    text: str


def _format_date(value: date | str | None) -> str:
    if value is None:
        return "TBD"
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value)
        except ValueError:
            return value
    return f"{value:%A, %B} {value.day}, {value.year}"


def invitation_email(
    *,
    invite_link: str,
    gig_title: str,
    role_name: str,
    gig_date: date | str | None,
    host_name: str | None = None,
    gig_time: str | None = None,
    location_name: str | None = None,
    ttl_days: int = 7,
) -> RenderedMessage:
    """Magic-link invitation for recipients reached by email."""
    details = [
        f"Host: {host_name or 'The band manager'}",
        f"Gig: {gig_title}",
        f"Role: {role_name}",
        f"Date: {_format_date(gig_date)}",
    ]
    if gig_time:
        details.append(f"Time: {gig_time}")
    if location_name:
        details.append(f"Location: {location_name}")

    text = "\n".join(
        [
            "Hi there!",
            "",
            "You've been invited to play on an upcoming gig!",
            "",
            "GIG DETAILS:",
            RULE,
            *details,
            "",
            "ACCEPT OR DECLINE:",
            RULE,
            "Click the link below to accept or decline this invitation:",
            "",
            invite_link,
            "",
            f"This link will expire in {ttl_days} days.",
            "",
            "Questions? Reply to this email or contact the project manager directly.",
            "",
            "Best,",
            "The GigMaster Team",
        ]
    )
    return RenderedMessage(subject=f"Gig Invitation: {role_name} for {gig_title}", text=text)
