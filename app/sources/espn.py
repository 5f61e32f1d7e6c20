# app/sources/espn.py

import requests
from datetime import datetime, timezone
from typing import List, Optional

from app.errors import FetchError


HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; home-win-alerts/1.0)"
}


def _as_dict(x) -> dict:
    return x if isinstance(x, dict) else {}


def _as_list(x) -> list:
    return x if isinstance(x, list) else []


def _parse_date(date_iso) -> Optional[datetime]:
    if not date_iso or not isinstance(date_iso, str):
        return None
    try:
        # ESPN uses "2024-06-01T02:10Z"
        return datetime.fromisoformat(date_iso.replace("Z", "+00:00")).astimezone(timezone.utc)
    except ValueError:
        return None


def fetch_team_schedule(schedule_url: str, timeout: int = 10) -> dict:
    """
    Full season schedule for one team. Raises FetchError on network errors,
    non-2xx responses and bodies that are not a JSON object.
    """
    try:
        resp = requests.get(schedule_url, headers=HEADERS, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        raise FetchError(f"ESPN schedule request failed: {e}") from e
    except ValueError as e:
        raise FetchError(f"ESPN schedule is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise FetchError(f"ESPN schedule has unexpected shape: {type(data).__name__}")
    return data


def _first_competition(event: dict) -> dict:
    competitions = _as_list(_as_dict(event).get("competitions"))
    return _as_dict(competitions[0]) if competitions else {}


def completed_home_games(data: dict, home_venue: str) -> List[dict]:
    """
    Events that are final and were played at home_venue, newest first.
    Events without a parseable date sort last; malformed events are skipped.
    """
    games = []
    for e in _as_list(_as_dict(data).get("events")):
        if not isinstance(e, dict):
            continue

        comp = _first_competition(e)
        status_type = _as_dict(_as_dict(comp.get("status")).get("type"))
        venue = _as_dict(comp.get("venue")).get("fullName")

        if status_type.get("completed") is True and venue == home_venue:
            games.append(e)

    oldest = datetime.min.replace(tzinfo=timezone.utc)
    games.sort(key=lambda e: _parse_date(e.get("date")) or oldest, reverse=True)
    return games


def _competitors(event: dict) -> List[dict]:
    return [c for c in _as_list(_first_competition(event).get("competitors")) if isinstance(c, dict)]


def find_competitor(event: dict, team_id: str) -> Optional[dict]:
    for c in _competitors(event):
        if str(_as_dict(c.get("team")).get("id")) == str(team_id):
            return c
    return None


def find_opponent(event: dict, team_id: str) -> Optional[dict]:
    for c in _competitors(event):
        if str(_as_dict(c.get("team")).get("id")) != str(team_id):
            return c
    return None


def event_start(event: dict) -> Optional[datetime]:
    return _parse_date(_as_dict(event).get("date"))
