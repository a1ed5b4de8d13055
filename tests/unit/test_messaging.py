"""
Tests for invitation email rendering and the Resend sender.
"""

from datetime import date

import pytest

from gigsync.services.messaging import email_sender as email_sender_module
from gigsync.services.messaging.email_sender import EmailSender
from gigsync.services.messaging.templates import invitation_email


def test_invitation_email_includes_details_and_link():
    message = invitation_email(
        invite_link="https://gigs.example.com/invitations/abc",
        gig_title="Summer Wedding",
        role_name="Bass",
        gig_date=date(2030, 6, 14),
        host_name="Dana",
        gig_time="19:00",
        location_name="Harbor Hall",
    )

    assert message.subject == "Gig Invitation: Bass for Summer Wedding"
    assert "Host: Dana" in message.text
    assert "Date: Friday, June 14, 2030" in message.text
    assert "Time: 19:00" in message.text
    assert "Location: Harbor Hall" in message.text
    assert "https://gigs.example.com/invitations/abc" in message.text
    assert "This link will expire in 7 days." in message.text


def test_invitation_email_optional_fields():
    message = invitation_email(
        invite_link="https://gigs.example.com/invitations/abc",
        gig_title="Summer Wedding",
        role_name="Musician",
        gig_date=None,
    )

    assert "Host: The band manager" in message.text
    assert "Date: TBD" in message.text
    assert "Time:" not in message.text
    assert "Location:" not in message.text


@pytest.mark.asyncio
async def test_sender_without_api_key_reports_failure():
    sender = EmailSender(api_key="")

    assert await sender.send("bo@example.com", "Subject", "Body") is False


@pytest.mark.asyncio
async def test_sender_passes_message_to_resend(monkeypatch):
    sent = []

    def fake_send(params):
        sent.append(params)
        return {"id": "email-1"}

    monkeypatch.setattr(email_sender_module.resend.Emails, "send", fake_send)
    sender = EmailSender(api_key="re_test", from_address="GigMaster <noreply@example.com>")

    assert await sender.send("bo@example.com", "Subject", "Body") is True
    assert sent == [
        {
            "from": "GigMaster <noreply@example.com>",
            "to": ["bo@example.com"],
            "subject": "Subject",
            "text": "Body",
        }
    ]


@pytest.mark.asyncio
async def test_sender_swallows_provider_errors(monkeypatch):
    def fake_send(params):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(email_sender_module.resend.Emails, "send", fake_send)
    sender = EmailSender(api_key="re_test")

    assert await sender.send("bo@example.com", "Subject", "Body") is False
