from pathlib import Path

import pytest

from app.config import Config
from app.db import GameStore


@pytest.fixture
def cfg(tmp_path):
    return Config(
        db_path=tmp_path / "home_wins.db",
        schedule_url="https://example.test/teams/19/schedule",
        team_id="19",
        team_tag="LAD",
        team_name="Dodgers",
        home_venue="Dodger Stadium",
        timezone="America/Los_Angeles",
        site_url="https://example.test",
    )


@pytest.fixture
def store(tmp_path):
    s = GameStore.open(Path(tmp_path) / "home_wins.db")
    yield s
    s.close()


def make_event(event_id="401", date="2024-06-02T02:10Z", completed=True,
               venue="Dodger Stadium", dodgers_won=True, opponent="San Francisco Giants",
               include_dodgers=True):
    competitors = [{"team": {"id": "26", "displayName": opponent}, "winner": not dodgers_won}]
    if include_dodgers:
        competitors.insert(0, {"team": {"id": "19", "displayName": "Los Angeles Dodgers"}, "winner": dodgers_won})
    event = {
        "date": date,
        "competitions": [{
            "status": {"type": {"completed": completed}},
            "venue": {"fullName": venue},
            "competitors": competitors,
        }],
    }
    if event_id is not None:
        event["id"] = event_id
    return event


@pytest.fixture
def event_factory():
    return make_event
