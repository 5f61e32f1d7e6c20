# app/config.py
# acts as central place for all local variables


import os
from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv


def _env(name: str, default: str) -> str:
    return os.getenv(name) or default


@dataclass(frozen=True)
class Config:
    load_dotenv()

    db_path: Path = field(default_factory=lambda: Path(_env("HOMEWIN_DB_PATH", "data/home_wins.db")))

    # Seconds between ticks when the poller runs as a loop instead of --once
    poll_interval_seconds: int = field(default_factory=lambda: int(_env("HOMEWIN_POLL_INTERVAL", "300")))

    # ESPN endpoints (public JSON)
    # The team schedule carries every event of the season with final status + venue.
    schedule_url: str = field(default_factory=lambda: _env(
        "HOMEWIN_SCHEDULE_URL",
        "https://site.api.espn.com/apis/site/v2/sports/baseball/mlb/teams/19/schedule",
    ))

    # Tracked team
    team_id: str = field(default_factory=lambda: _env("HOMEWIN_TEAM_ID", "19"))
    team_tag: str = field(default_factory=lambda: _env("HOMEWIN_TEAM_TAG", "LAD"))
    team_name: str = field(default_factory=lambda: _env("HOMEWIN_TEAM_NAME", "Dodgers"))
    home_venue: str = field(default_factory=lambda: _env("HOMEWIN_HOME_VENUE", "Dodger Stadium"))
    timezone: str = field(default_factory=lambda: _env("HOMEWIN_TIMEZONE", "America/Los_Angeles"))

    # Every external call (ESPN, SMTP) is bounded by this
    http_timeout_seconds: int = 10

    # Parallel SMTP sends per tick
    mail_workers: int = 4

    site_url: str = field(default_factory=lambda: _env("HOMEWIN_SITE_URL", "https://diddodgerswin.vercel.app"))


CONFIG = Config()
