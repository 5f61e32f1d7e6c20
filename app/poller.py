# app/poller.py

import argparse
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from zoneinfo import ZoneInfo

from app.config import CONFIG, Config
from app.db import GameObservation, GameStore
from app.errors import FetchError, StoreError
from app.handle_win import TickResult, handle_win
from app.messaging import MailGateway, build_win_message, mail_config_from_env
from app.sources.espn import (
    completed_home_games,
    event_start,
    fetch_team_schedule,
    find_competitor,
    find_opponent,
)


logger = logging.getLogger(__name__)

# PollResult.kind values
OK = "ok"
NO_GAME = "no_game"
TEAM_MISSING = "team_missing"
FETCH_FAILED = "fetch_failed"


@dataclass
class PollResult:
    kind: str
    observation: Optional[GameObservation] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind == OK


def format_game_date(start: Optional[datetime], tz_name: str) -> str:
    """June 1, 2024 in the team's local timezone."""
    if start is None:
        return "an unknown date"
    local = start.astimezone(ZoneInfo(tz_name))
    return f"{local:%B} {local.day}, {local.year}"


def game_id_for(event: dict, team_tag: str, now_utc: datetime) -> str:
    event_id = event.get("id")
    if event_id:
        return f"{team_tag}-{event_id}"

    # Best effort only: two polls of the same id-less event get different ids
    fallback = f"{team_tag}-{now_utc.year}-{int(now_utc.timestamp() * 1000)}"
    logger.warning("[POLL] event without id, using synthesized game_id %s", fallback)
    return fallback


def observation_from_schedule(data: dict, cfg: Config, now_utc: Optional[datetime] = None) -> PollResult:
    now_utc = now_utc or datetime.now(timezone.utc)

    games = completed_home_games(data, cfg.home_venue)
    if not games:
        logger.info("[POLL] no completed home games at %s", cfg.home_venue)
        return PollResult(kind=NO_GAME)

    latest = games[0]
    team = find_competitor(latest, cfg.team_id)
    if team is None:
        logger.error("[POLL] team %s not found in event %s", cfg.team_id, latest.get("id"))
        return PollResult(kind=TEAM_MISSING, error=f"team {cfg.team_id} missing from event {latest.get('id')}")

    opponent = find_opponent(latest, cfg.team_id)
    opponent_team = (opponent or {}).get("team")
    opponent_name = (opponent_team.get("displayName") if isinstance(opponent_team, dict) else None) or "opponent"

    game_date = format_game_date(event_start(latest), cfg.timezone)

    return PollResult(
        kind=OK,
        observation=GameObservation(
            game_id=game_id_for(latest, cfg.team_tag, now_utc),
            won_home_game=team.get("winner") is True,
            summary=f"on {game_date} against the {opponent_name}",
            observed_at=now_utc.isoformat(),
        ),
    )


def poll(cfg: Config = CONFIG) -> PollResult:
    """
    Most recent completed home game of the tracked team.
    Never raises for upstream trouble; the failure is reported in the result.
    """
    try:
        data = fetch_team_schedule(cfg.schedule_url, timeout=cfg.http_timeout_seconds)
    except FetchError as e:
        logger.error("[POLL] fetch failed: %s", e)
        return PollResult(kind=FETCH_FAILED, error=str(e))

    try:
        return observation_from_schedule(data, cfg)
    except (AttributeError, TypeError, KeyError, ValueError) as e:
        logger.error("[POLL] malformed schedule payload: %s", e)
        return PollResult(kind=FETCH_FAILED, error=f"malformed ESPN schedule: {e}")


def run_tick(store: GameStore, mailer: MailGateway, cfg: Config = CONFIG) -> TickResult:
    """One poll followed by the win handler. StoreError propagates."""
    result = poll(cfg)
    observation = result.observation if result.ok else None

    message = None
    if observation is not None:
        message = build_win_message(cfg.team_name, observation.summary, cfg.site_url)

    return handle_win(store, mailer, observation, message)


def parse_args():
    p = argparse.ArgumentParser(description="Home win poller: ESPN schedule -> game_data -> email subscribers")
    p.add_argument("--db", type=str, default=str(CONFIG.db_path))
    p.add_argument("--interval", type=int, default=CONFIG.poll_interval_seconds)
    p.add_argument("--once", action="store_true", help="Run a single tick and exit (for cron / CI schedulers)")
    p.add_argument("--log-level", type=str, default=os.getenv("LOG_LEVEL", "INFO"))
    return p.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = GameStore.open(Path(args.db))
    mailer = MailGateway.from_config(
        mail_config_from_env(),
        max_workers=CONFIG.mail_workers,
        audit=store.log_email,
    )

    try:
        logger.info("Using DB: %s", Path(args.db).resolve())

        while True:
            try:
                res = run_tick(store, mailer)
            except StoreError as e:
                if args.once:
                    raise
                logger.error("[TICK] aborted: %s", e)
                time.sleep(args.interval)
                continue

            logger.info(
                "[TICK] processed=%s notified=%s sent=%s/%s (%s)",
                res.processed, res.notified, res.sent_count, res.recipient_count, res.reason,
            )

            if args.once:
                break
            time.sleep(args.interval)

    finally:
        store.close()


if __name__ == "__main__":
    main()
