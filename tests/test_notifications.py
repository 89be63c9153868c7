import asyncio
import logging

from onkur.domain.effects import Cta, EmailMessage, outcome
from onkur.services.email_service import EmailService, render_template
from onkur.services.notifications import Notifier, cta
from tests.conftest import RecordingEmail


def message(to="vera@example.org"):
    return EmailMessage(
        to=to,
        subject="Thanks",
        heading="You made a difference",
        body_lines=["Total time recorded: 125 minutes."],
        cta=Cta("See your impact", "https://onkur.test/volunteer/hours"),
    )


def test_outcome_skips_messages_without_recipient():
    result = outcome({"ok": True}, message(), None, message(to=""))
    assert len(result.effects) == 1


def test_failed_notification_is_logged_not_raised(caplog):
    notifier = Notifier(email=RecordingEmail(fail=True))
    with caplog.at_level(logging.WARNING):
        delivered = asyncio.run(notifier.dispatch([message(), message("sam@greenco.org")]))

    assert delivered == 0
    assert "smtp down" in caplog.text


def test_cta_links_are_absolute():
    assert cta("Open", "/events/4").url == "https://onkur.test/events/4"


def test_render_template_includes_body_and_link():
    html, text = render_template(
        "Registration confirmed", ["<b>River</b> clean-up"], Cta("View", "https://onkur.test/e/1"), "Preview"
    )
    assert "&lt;b&gt;River&lt;/b&gt;" in html
    assert "https://onkur.test/e/1" in html
    assert "Registration confirmed" in text
    assert "View: https://onkur.test/e/1" in text


def test_unconfigured_smtp_simulates_delivery():
    service = EmailService()
    result = asyncio.run(service.send_templated_email(message()))
    assert result["simulated"]
    assert result["subject"] == "[Onkur] Thanks"
