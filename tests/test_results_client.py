from datetime import datetime

import pytest
import requests

from results_client.client import EspnScoreboardClient, ResultsFeedError
from results_client.notifier import NotificationError, WebhookNotifier


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class DummySession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        return self.response

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        return self.response


SCOREBOARD = {
    "events": [
        {
            "id": "600041",
            "name": "UFC 300: Pereira vs. Hill",
            "date": "2024-04-13T22:00Z",
            "competitions": [
                {
                    "id": "401",
                    "status": {"type": {"name": "STATUS_FINAL", "completed": True, "description": "Final"}},
                    "competitors": [
                        {"id": "1", "athlete": {"displayName": "Alex Pereira"}, "winner": True},
                        {"id": "2", "athlete": {"displayName": "Jamahal Hill"}, "winner": False},
                    ],
                    "details": [{"type": {"text": "KO/TKO"}}],
                },
                {
                    "id": "402",
                    "status": {"type": {"completed": False, "description": "Scheduled"}},
                    "competitors": [{"athlete": {"displayName": "Only One"}}],
                },
                "garbage",
            ],
        },
        {"id": "broken"},
        ["not", "an", "event"],
    ]
}


def test_get_scoreboard_parses_events_and_drops_malformed_entries():
    session = DummySession(DummyResponse(payload=SCOREBOARD))
    client = EspnScoreboardClient(session=session, timeout=3)

    events = client.get_scoreboard(limit=5)

    assert len(events) == 1
    event = events[0]
    assert event.name == "UFC 300: Pereira vs. Hill"
    assert event.date == datetime(2024, 4, 13, 22, 0)
    [competition] = event.competitions
    assert competition.completed
    assert competition.winner.display_name == "Alex Pereira"
    assert competition.method_text == "KO/TKO"
    url, params, timeout = session.calls[0]
    assert url.endswith("/scoreboard")
    assert params == {"limit": "5"}
    assert timeout == 3


def test_method_text_falls_back_to_status_description():
    payload = {"events": [dict(SCOREBOARD["events"][0])]}
    payload["events"][0]["competitions"] = [dict(SCOREBOARD["events"][0]["competitions"][0], details=[])]
    client = EspnScoreboardClient(session=DummySession(DummyResponse(payload=payload)))

    [event] = client.get_scoreboard()
    assert event.competitions[0].method_text == "Final"


def test_get_scoreboard_raises_on_http_error():
    client = EspnScoreboardClient(session=DummySession(DummyResponse(status_code=503, text="busy")))
    with pytest.raises(ResultsFeedError):
        client.get_scoreboard()


def test_get_scoreboard_raises_on_malformed_json():
    client = EspnScoreboardClient(session=DummySession(DummyResponse(payload=ValueError("bad json"))))
    with pytest.raises(ResultsFeedError):
        client.get_scoreboard()


def test_get_scoreboard_without_events_is_empty():
    client = EspnScoreboardClient(session=DummySession(DummyResponse(payload={"leagues": []})))
    assert client.get_scoreboard() == []


def test_webhook_notifier_posts_and_raises_on_rejection():
    session = DummySession(DummyResponse(status_code=204))
    WebhookNotifier("https://hooks.example.com/x", session=session).notify("Title", "Body")
    url, payload, timeout = session.calls[0]
    assert payload["title"] == "Title"
    assert payload["text"] == "Body"

    rejecting = WebhookNotifier("https://hooks.example.com/x", session=DummySession(DummyResponse(status_code=500)))
    with pytest.raises(NotificationError):
        rejecting.notify("Title", "Body")


def test_webhook_notifier_requires_url():
    with pytest.raises(ValueError):
        WebhookNotifier("", session=requests.Session())
