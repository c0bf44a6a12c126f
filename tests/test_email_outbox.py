import pytest

from design_studio.mail.base import EmailSendResult
from design_studio.models.email import EmailLog, EmailOutbox, EmailTemplate
from design_studio.services import email_outbox
from design_studio.services.email_outbox import (
    dispatch_in_background,
    dispatch_pending,
    enqueue_email,
    enqueue_event_email,
    retry_outbox_entry,
)
from design_studio.services.email_templates import render_for_event, render_string


class RecordingMailer:
    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.sent = []

    def send(self, *, to, subject, html):
        self.sent.append((to, subject))
        if self.fail_with is not None:
            raise self.fail_with
        return EmailSendResult(status="sent", provider_message_id=f"msg-{len(self.sent)}")


class RejectingMailer:
    def send(self, *, to, subject, html):
        return EmailSendResult(status="failed", error="domain not verified")


def _queue(db, **fields):
    entry = enqueue_email(
        db,
        recipient=fields.get("recipient", "client@example.com"),
        subject=fields.get("subject", "Hello"),
        body=fields.get("body", "<p>Hi</p>"),
    )
    db.commit()
    return entry


def test_render_string_escapes_values_and_blanks_missing_keys():
    rendered = render_string("<p>{{ name }} {{missing}}</p>", {"name": "<b>Al</b>"})

    assert rendered == "<p>&lt;b&gt;Al&lt;/b&gt; </p>"


def test_stored_template_overrides_default(db):
    db.add(
        EmailTemplate(
            name="VP done",
            subject="VP ready for {{name}}",
            body="<p>{{link}}</p>",
            trigger_event="virtual_prototype_complete",
        )
    )
    db.commit()

    rendered = render_for_event(db, "virtual_prototype_complete", {"name": "Sam", "link": "https://x/1"})

    assert rendered.subject == "VP ready for Sam"
    assert rendered.body == "<p>https://x/1</p>"


def test_default_template_and_unknown_event(db):
    rendered = render_for_event(db, "design_package_complete", {"link": "https://x/2", "link_label": "Open"})

    assert rendered.subject == "Design Package Complete!"
    assert 'href="https://x/2"' in rendered.body
    with pytest.raises(KeyError):
        render_for_event(db, "birthday", {})


def test_event_email_without_recipient_is_skipped(db):
    assert enqueue_event_email(db, recipient=None, trigger_event="payment_confirmation", variables={}) is None
    assert db.query(EmailOutbox).count() == 0


def test_dispatch_marks_sent_and_logs(db):
    entry = _queue(db)
    mailer = RecordingMailer()

    summary = dispatch_pending(db, mailer)

    assert summary == {"sent": 1, "failed": 0}
    db.refresh(entry)
    assert (entry.status, entry.attempts, entry.last_error) == ("sent", 1, None)
    assert entry.sent_at is not None
    log_entry = db.query(EmailLog).one()
    assert (log_entry.status, log_entry.provider_message_id) == ("sent", "msg-1")


def test_mailer_exception_marks_row_failed_without_raising(db):
    entry = _queue(db)

    summary = dispatch_pending(db, RecordingMailer(fail_with=RuntimeError("smtp down")))

    assert summary == {"sent": 0, "failed": 1}
    db.refresh(entry)
    assert (entry.status, entry.last_error) == ("failed", "smtp down")


def test_failed_rows_are_not_retried_automatically(db):
    _queue(db)
    dispatch_pending(db, RejectingMailer())
    mailer = RecordingMailer()

    assert dispatch_pending(db, mailer) == {"sent": 0, "failed": 0}
    assert mailer.sent == []


def test_manual_retry_links_to_previous_log(db):
    entry = _queue(db)
    dispatch_pending(db, RejectingMailer())
    first_log = db.query(EmailLog).one()

    retried = retry_outbox_entry(db, entry.id, RecordingMailer())

    assert retried.status == "sent"
    assert retried.resent_from == first_log.id
    db.refresh(entry)
    assert (entry.status, entry.attempts) == ("sent", 2)
    with pytest.raises(LookupError):
        retry_outbox_entry(db, 999, RecordingMailer())


def test_background_dispatch_uses_its_own_session(db, session_factory, monkeypatch):
    pending = _queue(db)
    already_sent = _queue(db, recipient="other@example.com")
    already_sent.status = "sent"
    db.commit()
    monkeypatch.setattr(email_outbox, "SessionLocal", session_factory)
    mailer = RecordingMailer()

    dispatch_in_background([pending.id, already_sent.id, 12345], mailer)

    assert mailer.sent == [("client@example.com", "Hello")]
    db.expire_all()
    assert db.query(EmailOutbox).filter(EmailOutbox.id == pending.id).one().status == "sent"
