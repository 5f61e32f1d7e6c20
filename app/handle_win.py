# app/handle_win.py

import logging
from dataclasses import dataclass
from typing import Optional

from app.db import GameObservation, GameRecord, GameStore
from app.errors import StoreError
from app.messaging import MailGateway, WinMessage


logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    processed: bool
    notified: bool
    recipient_count: int
    game_id: Optional[str] = None
    summary: Optional[str] = None
    sent_count: int = 0
    failed_count: int = 0
    warning: Optional[str] = None
    reason: str = ""


def handle_win(
    store: GameStore,
    mailer: MailGateway,
    observation: Optional[GameObservation],
    message: Optional[WinMessage],
) -> TickResult:
    """
    Decide whether an observation is a new home win and, if so, notify every
    active subscriber exactly once for that game_id.

    Order matters:
    1. the new GameRecord is written (notification_sent = False)
    2. emails go out
    3. the record is updated with the delivery outcome

    StoreError from step 1 propagates before any email is attempted. A
    StoreError from step 3 is logged and returned as TickResult.warning.
    """
    if observation is None:
        return TickResult(processed=False, notified=False, recipient_count=0, reason="no observation")

    if not observation.won_home_game:
        logger.info("[TICK] latest home game %s was not a win", observation.game_id)
        return TickResult(
            processed=False, notified=False, recipient_count=0,
            game_id=observation.game_id, summary=observation.summary, reason="not a home win",
        )

    current = store.get_most_recent()
    if current is not None and current.game_id == observation.game_id:
        logger.info("[TICK] already processed %s", observation.game_id)
        return TickResult(
            processed=False, notified=False, recipient_count=0,
            game_id=observation.game_id, summary=observation.summary, reason="already processed",
        )

    logger.info("[TICK] new home win detected: %s %s", observation.game_id, observation.summary)

    record = GameRecord(
        game_id=observation.game_id,
        won_home_game=True,
        summary=observation.summary,
        last_updated=observation.observed_at,
        last_home_win_at=observation.observed_at,
        notification_sent=False,
        notifications_sent_count=0,
    )

    # Conditional insert: an overlapping tick may have claimed this game first
    if not store.insert_if_new(record):
        logger.info("[TICK] %s claimed by another tick, skipping", observation.game_id)
        return TickResult(
            processed=False, notified=False, recipient_count=0,
            game_id=observation.game_id, summary=observation.summary, reason="already processed",
        )

    recipients = store.active_subscriber_emails()
    report = mailer.send_all(recipients, message, game_id=record.game_id)

    record.notification_sent = report.successful > 0
    record.notifications_sent_count = report.successful
    # Emails are already out; a failed update must not report the tick as failed
    warning = None
    try:
        store.upsert(record)
    except StoreError as e:
        logger.error("[TICK] %s delivered %s emails but saving the result failed: %s",
                     record.game_id, report.successful, e)
        warning = f"Emails sent but delivery result was not saved: {e}"

    return TickResult(
        processed=True,
        notified=record.notification_sent,
        recipient_count=len(recipients),
        sent_count=report.successful,
        game_id=record.game_id,
        summary=record.summary,
        failed_count=report.failed,
        warning=warning,
        reason="notified" if record.notification_sent else "no emails delivered",
    )
