from __future__ import annotations

import json
import unittest
from typing import Any

from ig_harvest.comment_harvester import harvest_comments
from ig_harvest.config_schema import GraphConfig
from ig_harvest.errors import GraphAPIError
from ig_harvest.graph_client import GraphClient


class _FakeResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else (json.dumps(payload) if payload is not None else "")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, responses: list[_FakeResponse]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, *, params: Any = None, timeout: Any = None) -> _FakeResponse:
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if not self._responses:
            raise AssertionError(f"unexpected request: {url}")
        return self._responses.pop(0)

    def close(self) -> None:
        pass


def _comment(cid: str, *, replies: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    item: dict[str, Any] = {
        "id": cid,
        "text": f"text {cid}",
        "username": f"user_{cid}",
        "timestamp": "2024-03-01T10:00:00+0000",
    }
    if replies is not None:
        item["replies"] = {"data": replies}
    return item


def _page(comments: list[dict[str, Any]], *, next_url: str | None) -> _FakeResponse:
    payload: dict[str, Any] = {"data": comments}
    if next_url:
        payload["paging"] = {"cursors": {"after": "c"}, "next": next_url}
    return _FakeResponse(200, payload)


def _client(session: _FakeSession) -> GraphClient:
    return GraphClient("tok", graph=GraphConfig(), session=session)  # type: ignore[arg-type]


class TestHarvestComments(unittest.TestCase):
    def test_replies_follow_their_parent(self) -> None:
        session = _FakeSession(
            [
                _page(
                    [_comment("p", replies=[_comment("r1"), _comment("r2")])],
                    next_url=None,
                )
            ]
        )
        harvest = harvest_comments(_client(session), "media1")

        self.assertEqual([c.id for c in harvest.comments], ["p", "r1", "r2"])
        self.assertEqual(harvest.comments[1].username, "user_r1")
        self.assertIsNone(harvest.comments[0].avatar_url)
        self.assertEqual(harvest.pages, 1)
        self.assertFalse(harvest.partial)

        first = session.calls[0]
        self.assertEqual(first["url"], "https://graph.facebook.com/v21.0/media1/comments")
        self.assertIn("replies{", first["params"]["fields"])
        self.assertEqual(first["params"]["limit"], 50)

    def test_follows_cursor_until_absent(self) -> None:
        session = _FakeSession(
            [
                _page([_comment("1"), _comment("2")], next_url="https://graph.example/p2"),
                _page([_comment("3")], next_url="https://graph.example/p3"),
                _page([_comment("4", replies=[_comment("4a")])], next_url=None),
            ]
        )
        harvest = harvest_comments(_client(session), "m")

        self.assertEqual([c.id for c in harvest.comments], ["1", "2", "3", "4", "4a"])
        self.assertEqual(harvest.pages, 3)
        self.assertEqual(
            [call["url"] for call in session.calls[1:]],
            ["https://graph.example/p2", "https://graph.example/p3"],
        )

    def test_rate_limit_returns_partial_result(self) -> None:
        session = _FakeSession(
            [
                _page([_comment("1"), _comment("2")], next_url="https://graph.example/p2"),
                _page([_comment("3")], next_url="https://graph.example/p3"),
                _FakeResponse(429, {"error": {"message": "rate limited"}}),
                _page([_comment("4")], next_url="https://graph.example/p5"),
                _page([_comment("5")], next_url=None),
            ]
        )
        harvest = harvest_comments(_client(session), "m")

        self.assertEqual([c.id for c in harvest.comments], ["1", "2", "3"])
        self.assertTrue(harvest.rate_limited)
        self.assertTrue(harvest.partial)
        self.assertEqual(harvest.pages, 2)
        self.assertEqual(len(session.calls), 3)

    def test_rate_limit_on_first_page_is_empty_success(self) -> None:
        session = _FakeSession([_FakeResponse(429, text="slow down")])
        harvest = harvest_comments(_client(session), "m")
        self.assertEqual(list(harvest.comments), [])
        self.assertTrue(harvest.rate_limited)

    def test_page_ceiling_truncates(self) -> None:
        session = _FakeSession(
            [_page([_comment(str(i))], next_url=f"https://graph.example/{i}") for i in range(4)]
        )
        harvest = harvest_comments(_client(session), "m", max_pages=2)

        self.assertEqual([c.id for c in harvest.comments], ["0", "1"])
        self.assertTrue(harvest.truncated)
        self.assertFalse(harvest.rate_limited)
        self.assertEqual(len(session.calls), 2)

    def test_other_errors_propagate_with_status_and_body(self) -> None:
        session = _FakeSession(
            [
                _page([_comment("1")], next_url="https://graph.example/p2"),
                _FakeResponse(500, text="internal upstream error"),
            ]
        )
        with self.assertRaises(GraphAPIError) as ctx:
            harvest_comments(_client(session), "m")

        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(ctx.exception.body, "internal upstream error")
        self.assertIn("500", str(ctx.exception))

    def test_records_without_id_or_username_are_dropped(self) -> None:
        session = _FakeSession(
            [_page([{"text": "orphan"}, _comment("ok")], next_url=None)]
        )
        harvest = harvest_comments(_client(session), "m")
        self.assertEqual([c.id for c in harvest.comments], ["ok"])


if __name__ == "__main__":
    unittest.main()
