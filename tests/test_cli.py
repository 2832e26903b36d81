import json

import pytest

requests = pytest.importorskip("requests")

from threshold_vote import cli


class FakeResponse:
    def __init__(self, body, status_code=200):
        self._body = body
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = json.dumps(body)

    def json(self):
        return self._body


@pytest.fixture
def calls(monkeypatch):
    seen = []

    def fake_post(url, json=None, timeout=None):
        seen.append(("POST", url, json))
        return FakeResponse({"ceremony_id": "cer_1", "status": "initialized"}, 201)

    def fake_get(url, timeout=None):
        seen.append(("GET", url, None))
        return FakeResponse({"error": "not verified"}, 409)

    monkeypatch.setattr(cli.requests, "post", fake_post)
    monkeypatch.setattr(cli.requests, "get", fake_get)
    monkeypatch.delenv("THRESHOLD_VOTE_SERVER_URL", raising=False)
    return seen


def test_setup_posts_defaults(calls, capsys):
    rc = cli.main(["setup", "--election-id", "42"])
    assert rc == 0
    method, url, payload = calls[0]
    assert (method, url) == ("POST", "http://127.0.0.1:5000/dkg/setup")
    assert payload == {"election_id": "42", "threshold": 3, "total_shares": 5}
    assert json.loads(capsys.readouterr().out)["ceremony_id"] == "cer_1"


def test_shareholders_and_server_override(calls):
    cli.main(
        ["--server", "http://dkg:8000/", "setup", "--election-id", "1",
         "--shareholder", "alice", "--shareholder", "bob"]
    )
    _, url, payload = calls[0]
    assert url == "http://dkg:8000/dkg/setup"
    assert payload["shareholder_ids"] == ["alice", "bob"]


def test_error_status_gives_non_zero_exit(calls, capsys):
    assert cli.main(["public-key", "--election-id", "42"]) == 1
    assert calls[0][1].endswith("/dkg/public-key/42")
    assert "not verified" in capsys.readouterr().out


def test_ceremony_commands(calls):
    for cmd in ("distribute", "verify-shares", "finalize"):
        cli.main([cmd, "--ceremony-id", "cer_1"])
    assert [c[1].rsplit("/", 1)[1] for c in calls] == ["distribute-shares", "verify-shares", "finalize"]
    assert all(c[2] == {"ceremony_id": "cer_1"} for c in calls)


def test_connection_error(monkeypatch):
    def boom(url, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(cli.requests, "get", boom)
    assert cli.main(["ceremonies"]) == 2


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out
