from app.db import GameRecord


def record(game_id, **kw):
    base = dict(
        game_id=game_id, won_home_game=True, summary=f"game {game_id}",
        last_updated="2024-06-02T06:00:00+00:00", last_home_win_at="2024-06-02T06:00:00+00:00",
    )
    base.update(kw)
    return GameRecord(**base)


def test_empty_store_has_no_current_game(store):
    assert store.get_most_recent() is None


def test_most_recent_is_last_created(store):
    store.insert_if_new(record("LAD-1"))
    store.insert_if_new(record("LAD-2"))
    assert store.get_most_recent().game_id == "LAD-2"


def test_insert_if_new_is_conditional(store):
    assert store.insert_if_new(record("LAD-1", summary="first")) is True
    assert store.insert_if_new(record("LAD-1", summary="second")) is False
    assert store.get_most_recent().summary == "first"


def test_upsert_updates_existing_row(store):
    store.insert_if_new(record("LAD-1"))
    saved = store.upsert(record("LAD-1", notification_sent=True, notifications_sent_count=4))
    assert saved.notification_sent is True
    assert saved.notifications_sent_count == 4
    assert store.get_most_recent() == saved


def test_upsert_inserts_missing_row(store):
    saved = store.upsert(record("LAD-7"))
    assert saved.game_id == "LAD-7"
    assert saved.notification_sent is False


def test_add_subscriber_normalizes_and_rejects_duplicates(store):
    ok, _ = store.add_subscriber("  Fan@Example.com ")
    assert ok
    ok, message = store.add_subscriber("fan@example.com")
    assert not ok
    assert message == "Email already subscribed"
    assert store.active_subscriber_emails() == ["fan@example.com"]


def test_unsubscribe_is_soft_and_reactivation_works(store):
    store.add_subscriber("fan@example.com")
    store.add_subscriber("other@example.com")

    ok, _ = store.remove_subscriber("fan@example.com")
    assert ok
    assert store.active_subscriber_emails() == ["other@example.com"]
    subs = {s.email: s.active for s in store.all_subscribers()}
    assert subs == {"fan@example.com": False, "other@example.com": True}

    ok, message = store.add_subscriber("fan@example.com")
    assert ok
    assert "reactivated" in message
    assert set(store.active_subscriber_emails()) == {"fan@example.com", "other@example.com"}


def test_remove_unknown_subscriber(store):
    ok, message = store.remove_subscriber("nobody@example.com")
    assert not ok
    assert message == "Email is not subscribed"


def test_email_logs_append_only(store):
    store.log_email("LAD-1", "a@example.com", "sent")
    store.log_email("LAD-1", "a@example.com", "failed", "timeout")
    store.log_email("LAD-2", "a@example.com", "sent")

    logs = store.email_logs_for_game("LAD-1")
    assert [(l.status, l.error_message) for l in logs] == [("sent", None), ("failed", "timeout")]
