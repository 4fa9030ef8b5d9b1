"""
Tests for the store event bus and the notification feed.
"""
from lifereboot.events import NotificationFeed, StoreEvents


def test_subscribers_receive_events():
    """Typed and wildcard subscribers both fire"""
    events = StoreEvents()
    typed, wildcard = [], []
    events.subscribe("habit_moved", lambda **kw: typed.append(kw))
    events.subscribe("*", lambda **kw: wildcard.append(kw["event_type"]))

    events.emit("habit_moved", user_id="u", bucket="completed")
    events.emit("note_saved", user_id="u")

    assert typed == [{"event_type": "habit_moved", "user_id": "u", "bucket": "completed"}]
    assert wildcard == ["habit_moved", "note_saved"]


def test_callback_errors_do_not_propagate():
    """A broken subscriber does not stop the others"""
    events = StoreEvents()
    seen = []

    def broken(**kwargs):
        raise RuntimeError("boom")

    events.subscribe("task_added", broken)
    events.subscribe("task_added", lambda **kw: seen.append(kw))
    events.emit("task_added", user_id="u")
    assert len(seen) == 1


def test_feed_formats_messages():
    """Templates are filled from the event fields"""
    events = StoreEvents()
    feed = NotificationFeed(events)
    events.emit("habit_moved", user_id="u", bucket="completed")
    events.emit("sync_error", user_id="u", action="move habit")

    notes = feed.drain("u")
    assert [n["level"] for n in notes] == ["success", "error"]
    assert notes[0]["message"] == "Habit moved to completed."
    assert notes[1]["message"] == "Failed to move habit. Please try again."
    assert feed.drain("u") == []


def test_feed_is_per_user_and_bounded():
    """Users only see their own toasts, and old ones fall off"""
    events = StoreEvents()
    feed = NotificationFeed(events, limit=2)
    for _ in range(3):
        events.emit("note_saved", user_id="a")
    events.emit("task_deleted", user_id="b")
    events.emit("note_saved")  # no user: ignored
    events.emit("unknown_event", user_id="a")

    assert len(feed.drain("a")) == 2
    assert [n["message"] for n in feed.drain("b")] == ["Task deleted."]
