# gigsync/services/calendar/event_content.py
"""
Human-readable event content for invitations, and the inverse heuristic
that pulls a schedule back out of imported event descriptions.
"""

import re
from dataclasses import dataclass

from gigsync.models.domain.gig_domain import Gig, GigRole
from gigsync.services.calendar.time_window import format_clock

UNTITLED_GIG = "Untitled Gig"
BRAND_NAME = "GigMaster"

# Any line carrying one of these is treated as a schedule line
TIME_PATTERNS = [
    # 24-hour with colon: 18:00, 9:30
    re.compile(r"\b(\d{1,2}):(\d{2})\b"),
    # 12-hour: 6pm, 6:30 pm, 6PM
    re.compile(r"\b(\d{1,2}):?(\d{2})?\s?(am|pm)\b", re.IGNORECASE),
    # Hebrew prefix: בשעה 18:00
    re.compile(r"בשעה\s+(\d{1,2}):(\d{2})"),
    # Dot separator: 18.00
    re.compile(r"\b(\d{1,2})\.(\d{2})\b"),
    # Dash separator: 18-00 (not part of an ISO date)
    re.compile(r"(?<![\d-])(\d{1,2})-(\d{2})(?![\d-])"),
]


@dataclass(slots=True, frozen=True)
class ParsedDescription:
    schedule: str | None
    remaining_text: str


@dataclass(slots=True, frozen=True)
class ScheduleItem:
    term: str
    time: str
    raw_line: str


def display_title(gig: Gig) -> str:
    return (gig.title or "").strip() or (gig.location_name or "").strip() or UNTITLED_GIG


def build_title(gig: Gig, organization_name: str | None = None) -> str:
    """``"<Organization> - <Gig Title>"``, or just the title for standalone gigs."""
    title = display_title(gig)
    if organization_name:
        return f"{organization_name} - {title}"
    return title


def build_description(
    role: GigRole,
    gig: Gig,
    base_url: str,
    *,
    organization_name: str | None = None,
    inviter_name: str | None = None,
) -> str:
    """Build the plain-text invitation body; empty sections are left out."""
    base_url = base_url.rstrip("/")
    band = organization_name or inviter_name or "the band"
    inviter = inviter_name or "the band manager"

    greeting = f'You\'ve been invited to "{display_title(gig)}"'
    if role.role_name:
        greeting += f" as {role.role_name}"
    greeting += f" with {band} by {inviter}."

    sections: list[list[str]] = [[greeting]]

    venue = []
    if gig.location_name:
        venue.append(f"Venue: {gig.location_name}")
    if gig.location_address:
        venue.append(f"Address: {gig.location_address}")
    sections.append(venue)

    schedule = []
    for label, value in (
        ("Call time", gig.call_time),
        ("Start time", gig.start_time),
        ("On stage", gig.on_stage_time),
    ):
        clock = format_clock(value)
        if clock:
            schedule.append(f"• {label}: {clock}")
    if schedule:
        sections.append(["Schedule:", *schedule])

    other = []
    if gig.dress_code:
        other.append(f"• Dress code: {gig.dress_code}")
    if gig.parking_info:
        other.append(f"• Parking: {gig.parking_info}")
    if other:
        sections.append(["Other info:", *other])

    if gig.notes:
        sections.append([f"Notes: {gig.notes}"])

    path = f"/p/{gig.public_slug}" if gig.public_slug else f"/gigs/{gig.id}/pack"
    sections.append([f"View full gig details: {base_url}{path}"])
    sections.append(["---", f"Organized with {BRAND_NAME} | {base_url}"])

    return "\n\n".join("\n".join(lines) for lines in sections if lines)


def is_schedule_line(line: str) -> bool:
    if not line.strip():
        return False
    return any(pattern.search(line) for pattern in TIME_PATTERNS)


def parse_description(text: str | None) -> ParsedDescription:
    """
    Split a free-text description into schedule lines and remaining notes.

    Never raises; text without any time-bearing line comes back untouched.
    """
    if not text:
        return ParsedDescription(schedule=None, remaining_text="")

    lines = [line.strip() for line in text.split("\n")]
    schedule_lines = [line for line in lines if is_schedule_line(line)]
    if not schedule_lines:
        return ParsedDescription(schedule=None, remaining_text=text)

    remaining = [line for line in lines if not is_schedule_line(line)]
    return ParsedDescription(
        schedule="\n".join(schedule_lines),
        remaining_text="\n".join(remaining).strip(),
    )


def extract_schedule_items(schedule: str | None) -> list[ScheduleItem]:
    """Break schedule text into (term, time) pairs."""
    if not schedule:
        return []

    items = []
    for line in schedule.split("\n"):
        if not line.strip():
            continue
        match = next((m for m in (p.search(line) for p in TIME_PATTERNS) if m), None)
        if match is None:
            continue
        time_text = match.group(0)
        term = line.replace(time_text, "", 1).strip()
        term = re.sub(r"^[-–—:•]\s*", "", term)
        term = re.sub(r"\s*[-–—:]\s*$", "", term)
        items.append(ScheduleItem(term=term, time=time_text, raw_line=line))
    return items
