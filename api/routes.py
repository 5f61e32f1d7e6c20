import logging
import os
import re
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import CONFIG
from app.db import GameRecord, GameStore, utc_now_iso
from app.errors import StoreError
from app.messaging import MailGateway, build_win_message, mail_config_from_env
from app.poller import run_tick

router = APIRouter()
logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class EmailBody(BaseModel):
    email: Optional[str] = None


class WinEmailBody(BaseModel):
    gameInfo: Optional[str] = None


# --- Dependencies ---


def get_store():
    store = GameStore.open(CONFIG.db_path)
    try:
        yield store
    finally:
        store.close()


def get_mailer(store: GameStore = Depends(get_store)) -> MailGateway:
    return MailGateway.from_config(
        mail_config_from_env(),
        max_workers=CONFIG.mail_workers,
        audit=store.log_email,
    )


def _authorized(authorization: Optional[str]) -> bool:
    secret = os.getenv("CRON_SECRET")
    if not secret or not authorization:
        return False
    return secrets.compare_digest(authorization, f"Bearer {secret}")


def _unauthorized() -> JSONResponse:
    logger.warning("[API] unauthorized trigger request")
    return JSONResponse({"error": "Unauthorized"}, status_code=401)


def status_payload(record: Optional[GameRecord]) -> dict:
    """
    Public view of the current GameRecord. Missing fields fall back to
    safe defaults so the status page always has something to render.
    """
    if record is None:
        return {
            "state": "NO_DATA",
            "didWin": False,
            "gameInfo": "No recent game data available",
            "lastUpdated": utc_now_iso(),
            "error": "No game data found",
        }
    return {
        "state": "RESULT",
        "didWin": bool(record.won_home_game),
        "gameInfo": record.summary or "",
        "lastUpdated": record.last_updated or utc_now_iso(),
        "lastHomeWin": record.last_home_win_at,
        "emailSent": bool(record.notification_sent),
        "emailsSent": int(record.notifications_sent_count or 0),
    }


# --- Status ---


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/game-data")
def game_data(store: GameStore = Depends(get_store)):
    try:
        record = store.get_most_recent()
    except StoreError as e:
        logger.error("[API] game-data read failed: %s", e)
        return JSONResponse(
            {
                "state": "ERROR",
                "didWin": False,
                "gameInfo": "Error loading game data",
                "lastUpdated": utc_now_iso(),
                "error": "Failed to fetch game data",
            },
            status_code=500,
        )
    return status_payload(record)


# --- Scheduled trigger ---


@router.api_route("/check-games", methods=["GET", "POST"])
def check_games(
    authorization: Optional[str] = Header(None),
    store: GameStore = Depends(get_store),
    mailer: MailGateway = Depends(get_mailer),
):
    """
    Invoked by the external scheduler. Runs one poll + notify tick.
    """
    if not _authorized(authorization):
        return _unauthorized()

    try:
        res = run_tick(store, mailer, CONFIG)
    except StoreError as e:
        logger.error("[API] tick aborted: %s", e)
        return JSONResponse({"error": "Cron job failed"}, status_code=500)

    if res.processed:
        out = {
            "success": True,
            "message": f"Sent emails to {res.sent_count} subscribers",
            "emailsSent": res.sent_count,
            "failed": res.failed_count,
            "gameInfo": res.summary,
        }
        if res.warning:
            out["warning"] = res.warning
        return out

    messages = {
        "no observation": "No games found",
        "not a home win": "No new home wins",
        "already processed": "Already processed this win",
    }
    return {
        "success": True,
        "message": messages.get(res.reason, res.reason),
        "emailsSent": 0,
    }


# --- Subscribers ---


def _valid_email(email: Optional[str]) -> Optional[str]:
    email = (email or "").strip().lower()
    if not email or not EMAIL_RE.match(email):
        return None
    return email


@router.post("/subscribe")
def subscribe(body: EmailBody, store: GameStore = Depends(get_store)):
    if not (body.email or "").strip():
        return JSONResponse({"success": False, "message": "Email is required"}, status_code=400)

    email = _valid_email(body.email)
    if email is None:
        return JSONResponse(
            {"success": False, "message": "Please enter a valid email address"},
            status_code=400,
        )

    try:
        ok, message = store.add_subscriber(email)
    except StoreError as e:
        logger.error("[API] subscribe failed: %s", e)
        return JSONResponse(
            {"success": False, "message": "Failed to subscribe. Please try again."},
            status_code=500,
        )
    return {"success": ok, "message": message}


@router.post("/unsubscribe")
def unsubscribe(body: EmailBody, store: GameStore = Depends(get_store)):
    email = _valid_email(body.email)
    if email is None:
        return JSONResponse(
            {"success": False, "message": "Please enter a valid email address"},
            status_code=400,
        )

    try:
        ok, message = store.remove_subscriber(email)
    except StoreError as e:
        logger.error("[API] unsubscribe failed: %s", e)
        return JSONResponse({"success": False, "message": "Failed to unsubscribe"}, status_code=500)
    return {"success": ok, "message": message}


# --- Manual send ---


@router.post("/send-win-emails")
def send_win_emails(
    body: WinEmailBody,
    authorization: Optional[str] = Header(None),
    store: GameStore = Depends(get_store),
    mailer: MailGateway = Depends(get_mailer),
):
    """
    Send the win email to every active subscriber without touching game_data.
    """
    if not _authorized(authorization):
        return _unauthorized()

    if not (body.gameInfo or "").strip():
        return JSONResponse({"error": "gameInfo is required"}, status_code=400)

    try:
        recipients = store.active_subscriber_emails()
    except StoreError as e:
        logger.error("[API] send-win-emails failed: %s", e)
        return JSONResponse({"error": "Failed to send emails"}, status_code=500)

    if not recipients:
        return {"success": True, "message": "No subscribers to notify", "emailsSent": 0, "failed": 0}

    message = build_win_message(CONFIG.team_name, body.gameInfo.strip(), CONFIG.site_url)
    report = mailer.send_all(recipients, message)

    return {
        "success": True,
        "message": f"Sent {report.successful} emails, {report.failed} failed",
        "emailsSent": report.successful,
        "failed": report.failed,
    }


@router.get("/send-win-emails")
def subscriber_count(store: GameStore = Depends(get_store)):
    try:
        count = len(store.active_subscriber_emails())
    except StoreError as e:
        logger.error("[API] subscriber count failed: %s", e)
        return JSONResponse({"error": "Failed to get subscriber count"}, status_code=500)
    return {"subscriberCount": count, "message": f"{count} active subscribers"}
