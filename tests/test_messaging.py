import smtplib
import threading

import pytest

from app.errors import MailError, StoreError
from app.messaging import MailConfig, MailGateway, build_win_message, mail_config_from_env, send_email


MESSAGE = build_win_message("Dodgers", "on June 1, 2024 against the San Francisco Giants", "https://example.test")


def test_build_win_message():
    assert MESSAGE.subject == "Dodgers win at home!"
    assert "The Dodgers won at home on June 1, 2024 against the San Francisco Giants!" in MESSAGE.text
    assert "https://example.test" in MESSAGE.html


def test_build_win_message_escapes_html():
    msg = build_win_message("Dodgers", "against the <script>", "https://example.test")
    assert "<script>" not in msg.html
    assert "&lt;script&gt;" in msg.html


def test_send_all_counts_failures_and_attempts_everyone():
    lock = threading.Lock()
    calls = []

    def sender(to_email, message):
        with lock:
            calls.append(to_email)
        if to_email.startswith("bad"):
            raise MailError("rejected")

    recipients = [f"good{i}@example.com" for i in range(5)] + ["bad1@example.com", "bad2@example.com"]
    report = MailGateway(sender, max_workers=3).send_all(recipients, MESSAGE)

    assert report.successful == 5
    assert report.failed == 2
    assert report.total == 7
    assert sorted(calls) == sorted(recipients)
    failed = {r.email: r.error for r in report.results if not r.ok}
    assert failed == {"bad1@example.com": "rejected", "bad2@example.com": "rejected"}


def test_send_all_unexpected_exception_is_a_failure():
    def sender(to_email, message):
        raise RuntimeError()

    report = MailGateway(sender).send_all(["a@example.com"], MESSAGE)
    assert (report.successful, report.failed) == (0, 1)
    assert report.results[0].error == "RuntimeError"


def test_send_all_empty():
    report = MailGateway(lambda to, msg: None).send_all([], MESSAGE, game_id="LAD-1")
    assert (report.successful, report.failed, report.results) == (0, 0, [])


def test_send_all_writes_audit_log(store):
    def sender(to_email, message):
        if to_email == "b@example.com":
            raise MailError("mailbox full")

    gateway = MailGateway(sender, audit=store.log_email)
    gateway.send_all(["a@example.com", "b@example.com"], MESSAGE, game_id="LAD-42")

    logs = {log.subscriber_email: log for log in store.email_logs_for_game("LAD-42")}
    assert logs["a@example.com"].status == "sent"
    assert logs["a@example.com"].error_message is None
    assert logs["b@example.com"].status == "failed"
    assert logs["b@example.com"].error_message == "mailbox full"


def test_audit_failure_does_not_change_counts():
    def audit(*args):
        raise StoreError("database is locked")

    report = MailGateway(lambda to, msg: None, audit=audit).send_all(["a@example.com"], MESSAGE, game_id="LAD-1")
    assert report.successful == 1


def test_mail_config_from_env(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_USER", "alerts@example.com")
    monkeypatch.setenv("SMTP_PASSWORD", "secret")
    monkeypatch.delenv("SMTP_PORT", raising=False)
    monkeypatch.delenv("MAIL_FROM", raising=False)

    cfg = mail_config_from_env()
    assert cfg.mail_enabled
    assert cfg.smtp_port == 587
    assert cfg.mail_from == "Home Win Alert <alerts@example.com>"


def test_mail_config_disabled_without_password(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_USER", "alerts@example.com")
    monkeypatch.delenv("SMTP_PASSWORD", raising=False)
    assert not mail_config_from_env().mail_enabled


def test_send_email_disabled_raises():
    cfg = MailConfig(False, None, 587, None, None, None)
    with pytest.raises(MailError):
        send_email(cfg, "a@example.com", MESSAGE)


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port, self.timeout = host, port, timeout
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        if password != "secret":
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    def sendmail(self, from_addr, to_addrs, msg):
        self.sent.append((from_addr, to_addrs, msg))


def test_send_email_over_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    cfg = MailConfig(True, "smtp.example.com", 587, "alerts@example.com", "secret", "Alerts <alerts@example.com>")

    send_email(cfg, "fan@example.com", MESSAGE)

    server = FakeSMTP.instances[0]
    assert (server.host, server.port, server.timeout) == ("smtp.example.com", 587, 10)
    from_addr, to_addrs, body = server.sent[0]
    assert to_addrs == ["fan@example.com"]
    assert "Subject: Dodgers win at home!" in body


def test_send_email_smtp_error_becomes_mail_error(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    cfg = MailConfig(True, "smtp.example.com", 587, "alerts@example.com", "wrong", "Alerts <alerts@example.com>")
    with pytest.raises(MailError):
        send_email(cfg, "fan@example.com", MESSAGE)
