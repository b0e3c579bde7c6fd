from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import Any

from ig_harvest.config_schema import AppConfig, SourceConfig
from ig_harvest.errors import ConfigError, MalformedInputError, PostNotFoundError
from ig_harvest.models import AuthCredentials, HarvestRequest
from ig_harvest.pipeline import harvest_post
from ig_harvest.run_log import RunLogger
from ig_harvest.sources import AuthenticatedSource, MockSource, ScrapedSource, select_source

_POST_URL = "https://www.instagram.com/p/GIVE1/"


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
        self.urls: list[str] = []

    def get(self, url: str, *, params: Any = None, timeout: Any = None) -> _FakeResponse:
        self.urls.append(url)
        if not self._responses:
            raise AssertionError(f"unexpected request: {url}")
        return self._responses.pop(0)

    def close(self) -> None:
        pass


class _FakeRunnable:
    def __init__(self, run_result: dict[str, Any]) -> None:
        self._run_result = run_result

    def call(self, **kwargs: Any) -> Any:
        return self._run_result


class _FakeDataset:
    def __init__(self, items: list[dict[str, Any]]) -> None:
        self._items = items

    def iterate_items(self, *, clean: bool | None = None) -> Any:
        yield from self._items


class _FakeApifyClient:
    def __init__(self, run_result: dict[str, Any], items: list[dict[str, Any]]) -> None:
        self._runnable = _FakeRunnable(run_result)
        self._dataset = _FakeDataset(items)
        self.calls = 0

    def actor(self, actor_id: str) -> _FakeRunnable:
        self.calls += 1
        return self._runnable

    def task(self, task_id: str) -> _FakeRunnable:
        self.calls += 1
        return self._runnable

    def dataset(self, dataset_id: str) -> _FakeDataset:
        return self._dataset


def _graph_responses(*, comments_status: int = 200) -> list[_FakeResponse]:
    media = _FakeResponse(
        200,
        {
            "data": [
                {"id": "m_other", "permalink": "https://www.instagram.com/p/OTHER/"},
                {
                    "id": "m_give",
                    "permalink": _POST_URL,
                    "caption": "Win a bike!",
                    "timestamp": "2024-05-01T10:00:00+0000",
                    "thumbnail_url": "https://cdn.example/thumb.jpg",
                    "media_type": "VIDEO",
                },
            ]
        },
    )
    if comments_status == 200:
        comments = _FakeResponse(
            200,
            {
                "data": [
                    {
                        "id": "c1",
                        "username": "ann",
                        "text": "me!",
                        "timestamp": "2024-05-01T11:00:00+0000",
                        "replies": {
                            "data": [
                                {"id": "c1r", "username": "bo", "text": "me too", "timestamp": "2024-05-01T11:05:00+0000"}
                            ]
                        },
                    }
                ]
            },
        )
    else:
        comments = _FakeResponse(comments_status, text="limited")
    profile = _FakeResponse(
        200,
        {"id": "acct", "username": "bikeshop", "profile_picture_url": "https://cdn.example/me.jpg"},
    )
    return [media, comments, profile]


class TestHarvestPost(unittest.TestCase):
    def test_authenticated_path_end_to_end(self) -> None:
        session = _FakeSession(_graph_responses())
        request = HarvestRequest(
            post_url=_POST_URL,
            auth=AuthCredentials(account_id="acct", access_token="tok"),
        )

        result = harvest_post(request, AppConfig(), session=session)  # type: ignore[arg-type]
        payload = result.to_dict()

        self.assertEqual([c["id"] for c in payload["comments"]], ["c1", "c1r"])
        self.assertEqual(
            payload["post"],
            {
                "caption": "Win a bike!",
                "imageUrl": "https://cdn.example/thumb.jpg",
                "ownerUsername": "bikeshop",
                "ownerAvatarUrl": "https://cdn.example/me.jpg",
                "createdAt": "2024-05-01T10:00:00+0000",
            },
        )
        self.assertEqual(payload["meta"]["source"], "authenticated")
        self.assertEqual(payload["meta"]["totalComments"], 2)
        self.assertEqual(payload["meta"]["mediaId"], "m_give")
        self.assertEqual(payload["meta"]["mediaType"], "VIDEO")
        self.assertFalse(payload["meta"]["partial"])
        self.assertTrue(session.urls[1].endswith("/m_give/comments"))

    def test_authenticated_rate_limit_is_partial_success(self) -> None:
        session = _FakeSession(_graph_responses(comments_status=429))
        request = HarvestRequest(
            post_url=_POST_URL,
            auth=AuthCredentials(account_id="acct", access_token="tok"),
        )
        result = harvest_post(request, AppConfig(), session=session)  # type: ignore[arg-type]

        self.assertEqual(list(result.comments), [])
        assert result.meta is not None
        self.assertTrue(result.meta.partial)
        self.assertEqual(result.post.owner_username, "bikeshop")

    def test_profile_failure_is_tolerated(self) -> None:
        responses = _graph_responses()
        responses[2] = _FakeResponse(500, text="nope")
        session = _FakeSession(responses)
        request = HarvestRequest(
            post_url=_POST_URL,
            auth=AuthCredentials(account_id="acct", access_token="tok"),
        )
        result = harvest_post(request, AppConfig(), session=session)  # type: ignore[arg-type]

        self.assertIsNone(result.post.owner_username)
        self.assertIsNone(result.post.owner_avatar_url)
        self.assertEqual(len(result.comments), 2)

    def test_post_not_in_account_raises_not_found(self) -> None:
        session = _FakeSession(
            [_FakeResponse(200, {"data": [{"id": "x", "permalink": "https://www.instagram.com/p/NOPE/"}]})]
        )
        request = HarvestRequest(
            post_url=_POST_URL,
            auth=AuthCredentials(account_id="acct", access_token="tok"),
        )
        with self.assertRaises(PostNotFoundError) as ctx:
            harvest_post(request, AppConfig(), session=session)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.kind, "not_found")
        self.assertEqual(ctx.exception.shortcode, "GIVE1")

    def test_scraped_path_end_to_end(self) -> None:
        items = [
            {
                "shortCode": "GIVE1",
                "caption": "Win a bike!",
                "displayUrl": "https://cdn.example/post.jpg",
                "ownerUsername": "bikeshop",
                "timestamp": "2024-05-01T10:00:00.000Z",
                "latestComments": [
                    {
                        "id": "s1",
                        "ownerUsername": "ann",
                        "text": "me!",
                        "timestamp": 1700000000,
                        "ownerProfilePicUrl": "https://cdn.example/ann.jpg",
                        "replies": [
                            {
                                "id": "s1r",
                                "ownerUsername": "bikeshop",
                                "text": "good luck",
                                "ownerProfilePicUrl": "https://cdn.example/shop.jpg",
                            }
                        ],
                    },
                    {"text": "no author"},
                ],
            }
        ]
        fake = _FakeApifyClient({"id": "r", "defaultDatasetId": "d", "status": "SUCCEEDED"}, items)

        result = harvest_post(
            HarvestRequest(post_url=_POST_URL),
            AppConfig(),
            apify_client=fake,  # type: ignore[arg-type]
        )

        self.assertEqual([c.id for c in result.comments], ["s1", "s1r"])
        self.assertEqual(result.comments[0].timestamp, "2023-11-14T22:13:20.000Z")
        self.assertEqual(result.post.caption, "Win a bike!")
        self.assertEqual(result.post.image_url, "https://cdn.example/post.jpg")
        self.assertEqual(result.post.owner_avatar_url, "https://cdn.example/shop.jpg")
        assert result.meta is not None
        self.assertEqual(result.meta.source, "scraped")
        self.assertFalse(result.meta.partial)

    def test_scraped_comment_per_row_dataset_has_no_post_owner(self) -> None:
        items = [
            {
                "id": "r1",
                "ownerUsername": "first_commenter",
                "ownerProfilePicUrl": "https://cdn.example/first.jpg",
                "text": "pick me",
                "timestamp": "2024-05-01T11:00:00.000Z",
            },
            {"id": "r2", "ownerUsername": "second", "text": "me too", "timestamp": 1700000000},
        ]
        fake = _FakeApifyClient({"id": "r", "defaultDatasetId": "d", "status": "SUCCEEDED"}, items)

        result = harvest_post(
            HarvestRequest(post_url=_POST_URL),
            AppConfig(),
            apify_client=fake,  # type: ignore[arg-type]
        )

        self.assertEqual([c.username for c in result.comments], ["first_commenter", "second"])
        self.assertIsNone(result.post.owner_username)
        self.assertIsNone(result.post.owner_avatar_url)
        self.assertIsNone(result.post.created_at)
        self.assertIsNone(result.post.caption)

    def test_mock_mode_makes_no_upstream_calls(self) -> None:
        session = _FakeSession([])
        fake = _FakeApifyClient({}, [])
        result = harvest_post(
            HarvestRequest(post_url=_POST_URL, mock=True),
            AppConfig(),
            environ={},
            session=session,  # type: ignore[arg-type]
            apify_client=fake,  # type: ignore[arg-type]
        )

        self.assertGreater(len(result.comments), 0)
        self.assertIsNotNone(result.post.caption)
        self.assertEqual(session.urls, [])
        self.assertEqual(fake.calls, 0)

    def test_missing_url_is_malformed_input(self) -> None:
        with self.assertRaises(MalformedInputError):
            harvest_post(HarvestRequest(post_url="  "), AppConfig(), environ={})

    def test_logger_records_request_lifecycle(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            log_path = Path(td) / "harvest.log"
            with RunLogger.open(log_path) as log:
                harvest_post(HarvestRequest(post_url=_POST_URL, mock=True), AppConfig(), logger=log)
                with self.assertRaises(MalformedInputError):
                    harvest_post(HarvestRequest(post_url=""), AppConfig(), logger=log)

            records = [json.loads(ln) for ln in log_path.read_text(encoding="utf-8").splitlines()]
            events = [r["event"] for r in records]
            self.assertEqual(events, ["harvest_started", "harvest_completed", "harvest_failed"])
            self.assertEqual(records[2]["data"]["error"]["kind"], "malformed_input")
            self.assertNotEqual(records[0]["request_id"], records[2]["request_id"])

    def test_unexpected_error_is_logged_and_reraised(self) -> None:
        class _BrokenSession(_FakeSession):
            def get(self, url: str, *, params: Any = None, timeout: Any = None) -> _FakeResponse:
                raise KeyError("boom")

        request = HarvestRequest(
            post_url=_POST_URL,
            auth=AuthCredentials(account_id="acct", access_token="tok"),
        )
        with tempfile.TemporaryDirectory() as td:
            log_path = Path(td) / "harvest.log"
            with RunLogger.open(log_path) as log:
                with self.assertRaises(KeyError):
                    harvest_post(
                        request,
                        AppConfig(),
                        session=_BrokenSession([]),  # type: ignore[arg-type]
                        logger=log,
                    )

            records = [json.loads(ln) for ln in log_path.read_text(encoding="utf-8").splitlines()]
            self.assertEqual([r["event"] for r in records], ["harvest_started", "harvest_failed"])
            self.assertEqual(records[1]["data"]["error"]["type"], "KeyError")
            self.assertTrue(records[1]["data"]["unexpected"])


class TestSelectSource(unittest.TestCase):
    def test_mock_from_config_wins(self) -> None:
        cfg = AppConfig(source=SourceConfig(mock=True))
        request = HarvestRequest(
            post_url=_POST_URL,
            auth=AuthCredentials(account_id="a", access_token="t"),
        )
        self.assertIsInstance(select_source(request, cfg, environ={}), MockSource)

    def test_credentials_select_authenticated(self) -> None:
        request = HarvestRequest(
            post_url=_POST_URL,
            auth=AuthCredentials(account_id="a", access_token="t"),
        )
        self.assertIsInstance(select_source(request, AppConfig(), environ={}), AuthenticatedSource)

    def test_incomplete_credentials_are_config_errors(self) -> None:
        request = HarvestRequest(
            post_url=_POST_URL,
            auth=AuthCredentials(account_id="a", access_token=" "),
        )
        with self.assertRaises(ConfigError):
            select_source(request, AppConfig(), environ={})

    def test_scraped_requires_apify_token(self) -> None:
        request = HarvestRequest(post_url=_POST_URL)
        with self.assertRaises(ConfigError):
            select_source(request, AppConfig(), environ={})

        source = select_source(request, AppConfig(), environ={"APIFY_TOKEN": "apify"})
        self.assertIsInstance(source, ScrapedSource)


if __name__ == "__main__":
    unittest.main()
