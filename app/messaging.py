# app/messaging.py

from __future__ import annotations

import logging
import os
import smtplib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Callable, List, Optional

from app.errors import MailError, StoreError


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MailConfig:
    mail_enabled: bool
    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    mail_from: Optional[str]
    timeout_seconds: int = 10


def mail_config_from_env() -> MailConfig:
    """
    Load SMTP configuration from environment variables.
    """
    host = os.getenv("SMTP_HOST")
    user = os.getenv("SMTP_USER")
    password = os.getenv("SMTP_PASSWORD")
    mail_from = os.getenv("MAIL_FROM") or (f"Home Win Alert <{user}>" if user else None)

    mail_enabled = all([host, user, password])

    return MailConfig(
        mail_enabled=mail_enabled,
        smtp_host=host,
        smtp_port=int(os.getenv("SMTP_PORT") or 587),
        smtp_user=user,
        smtp_password=password,
        mail_from=mail_from,
    )


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WinMessage:
    subject: str
    text: str
    html: str


def build_win_message(team_name: str, summary: str, site_url: str) -> WinMessage:
    """
    Build the home-win email. summary reads "on <date> against the <opponent>".
    """
    headline = f"The {team_name} won at home {summary}!"
    text = "\n".join([
        "Hello there!",
        "",
        headline,
        "",
        f"See the latest result: {site_url}",
        "",
        "You are receiving this because you subscribed to home win alerts.",
    ])
    html = (
        "<div style='font-family:sans-serif;max-width:465px;margin:0 auto'>"
        f"<h2 style='font-weight:normal;text-align:center'>{escape(team_name)} win!</h2>"
        "<p>Hello there!</p>"
        f"<p>{escape(headline)}</p>"
        f"<p><a href='{escape(site_url)}'>See the latest result</a></p>"
        "<p style='color:#6b7280;font-size:12px'>"
        "You are receiving this because you subscribed to home win alerts."
        "</p></div>"
    )
    return WinMessage(subject=f"{team_name} win at home!", text=text, html=html)


# ---------------------------------------------------------------------------
# Email sending
# ---------------------------------------------------------------------------

def send_email(cfg: MailConfig, to_email: str, message: WinMessage) -> None:
    """
    Send a single email over SMTP (STARTTLS). Raises MailError on any failure.
    """
    if not cfg.mail_enabled:
        logger.warning("[MAIL DISABLED] would send to %s: %s", to_email, message.subject)
        raise MailError("SMTP is not configured")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = message.subject
    msg["From"] = cfg.mail_from
    msg["To"] = to_email
    msg.attach(MIMEText(message.text, "plain"))
    msg.attach(MIMEText(message.html, "html"))

    try:
        with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=cfg.timeout_seconds) as server:
            server.starttls()
            server.login(cfg.smtp_user, cfg.smtp_password)
            server.sendmail(cfg.smtp_user, [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        raise MailError(str(e)) from e


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------

@dataclass
class RecipientResult:
    email: str
    ok: bool
    error: Optional[str] = None


@dataclass
class DeliveryReport:
    successful: int = 0
    failed: int = 0
    results: List[RecipientResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.successful + self.failed


Sender = Callable[[str, WinMessage], None]
AuditLog = Callable[..., None]


class MailGateway:
    """
    Delivers one message to many recipients.

    Each recipient gets exactly one send attempt; a failure for one address
    never affects the others. Attempts run on a small thread pool and every
    outcome is collected before send_all returns.
    """

    def __init__(self, sender: Sender, max_workers: int = 4, audit: Optional[AuditLog] = None):
        self.sender = sender
        self.max_workers = max(1, max_workers)
        self.audit = audit

    @classmethod
    def from_config(cls, cfg: MailConfig, max_workers: int = 4, audit: Optional[AuditLog] = None) -> "MailGateway":
        return cls(lambda to, msg: send_email(cfg, to, msg), max_workers=max_workers, audit=audit)

    def _attempt(self, email: str, message: WinMessage) -> RecipientResult:
        try:
            self.sender(email, message)
        except Exception as e:
            logger.error("[MAIL ERROR] %s: %s", email, e)
            return RecipientResult(email=email, ok=False, error=str(e) or type(e).__name__)
        return RecipientResult(email=email, ok=True)

    def send_all(self, recipients: List[str], message: WinMessage, game_id: Optional[str] = None) -> DeliveryReport:
        report = DeliveryReport()
        if not recipients:
            return report

        workers = min(self.max_workers, len(recipients))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(lambda r: self._attempt(r, message), recipients))

        for res in results:
            report.results.append(res)
            if res.ok:
                report.successful += 1
            else:
                report.failed += 1

            if self.audit and game_id:
                try:
                    self.audit(game_id, res.email, "sent" if res.ok else "failed", res.error)
                except StoreError as e:
                    logger.warning("[MAIL] audit log failed for %s: %s", res.email, e)

        logger.info("[MAIL] %s sent, %s failed (game=%s)", report.successful, report.failed, game_id)
        return report
