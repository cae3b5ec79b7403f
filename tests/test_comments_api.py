"""
Tests for band/retry.py and band/comments_api.py.
"""

import asyncio

import pytest
import requests

from band.comments_api import CommentsApiClient
from band.extractor import parse_comments
from band.errors import AuthenticationFailure, CrawlError, NavigationTimeout, TransientNetworkError
from band.retry import RetryPolicy, call_with_retries, call_with_retries_async, compute_backoff_delay

from fakes import FakeRequestsSession, FakeResponse, comment_item


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

class TestBackoff:
    def test_doubling(self):
        policy = RetryPolicy(base_delay_seconds=1.0)
        assert [compute_backoff_delay(n, policy) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_capped(self):
        policy = RetryPolicy(base_delay_seconds=10.0, max_delay_seconds=15.0)
        assert compute_backoff_delay(3, policy) == 15.0

    def test_jitter_bounded(self):
        policy = RetryPolicy(base_delay_seconds=2.0, jitter_ratio=0.5)
        for _ in range(50):
            assert 1.0 <= compute_backoff_delay(1, policy) <= 3.0

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestCallWithRetries:
    def test_succeeds_after_transient_failures(self):
        calls, sleeps = [], []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientNetworkError("503", status=503)
            return "ok"

        assert call_with_retries(flaky, RetryPolicy(), sleep_fn=sleeps.append) == "ok"
        assert len(calls) == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self):
        calls = []

        def always_down():
            calls.append(1)
            raise NavigationTimeout("timeout")

        with pytest.raises(NavigationTimeout):
            call_with_retries(always_down, RetryPolicy(max_attempts=3), sleep_fn=lambda s: None)
        assert len(calls) == 3

    def test_other_errors_not_retried(self):
        calls = []

        def rejected():
            calls.append(1)
            raise AuthenticationFailure("bad token")

        with pytest.raises(AuthenticationFailure):
            call_with_retries(rejected, RetryPolicy(), sleep_fn=lambda s: None)
        assert len(calls) == 1

    def test_async_variant(self):
        calls, sleeps = [], []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise TransientNetworkError("reset")
            return 42

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        result = asyncio.run(call_with_retries_async(flaky, RetryPolicy(), sleep_fn=fake_sleep))
        assert result == 42
        assert sleeps == [1.0]


# ---------------------------------------------------------------------------
# Comments API
# ---------------------------------------------------------------------------

def page(items, next_params=None):
    return FakeResponse(200, {
        "result_code": 1,
        "result_data": {"items": items, "paging": {"next_params": next_params}},
    })


def item(key, name, content, created_at=1741946400000):
    return {
        "comment_key": key,
        "author": {"name": name, "user_key": f"u_{key}"},
        "content": content,
        "created_at": created_at,
    }


def client(responses, **kwargs):
    session = FakeRequestsSession(responses)
    return CommentsApiClient("token", session=session, sleep_fn=lambda s: None, **kwargs), session


class TestCommentsApiClient:
    def test_follows_pagination(self):
        api, session = client([
            page([item("c1", "김고객", "1번 2개")], next_params={"after": "c1", "limit": 50}),
            page([item("c2", "이고객", '<band:refer user_no="9">김고객</band:refer> 2번 1개')]),
        ])
        comments = api.fetch_comments("band_key", "post_key")
        assert [c.comment_id for c in comments] == ["post_key_c1", "post_key_c2"]
        assert comments[1].body == "2번 1개"
        assert comments[0].author_key == "u_c1"
        assert comments[0].commented_at == "2025-03-14T19:00:00+09:00"
        assert session.calls[1]["params"]["after"] == "c1"
        assert session.calls[0]["params"]["access_token"] == "token"

    def test_transient_failures_retried(self):
        api, session = client([
            FakeResponse(503),
            requests.ConnectionError("reset"),
            page([item("c1", "a", "1개")]),
        ])
        assert len(api.fetch_comments("b", "p")) == 1
        assert len(session.calls) == 3

    def test_first_page_exhausted_raises(self):
        api, _ = client([FakeResponse(500)] * 3)
        with pytest.raises(TransientNetworkError):
            api.fetch_comments("b", "p")

    def test_later_page_failure_returns_partial(self):
        api, _ = client([page([item("c1", "a", "1개")], next_params={"after": "c1"})] + [FakeResponse(429)] * 3)
        assert [c.comment_id for c in api.fetch_comments("b", "p")] == ["p_c1"]

    def test_rejected_token(self):
        api, session = client([FakeResponse(401)])
        with pytest.raises(AuthenticationFailure):
            api.fetch_comments("b", "p")
        assert len(session.calls) == 1

    def test_result_code_checked(self):
        api, _ = client([FakeResponse(200, {"result_code": 60100, "result_data": {}})])
        with pytest.raises(CrawlError):
            api.fetch_comments("b", "p")

    def test_invalid_json(self):
        api, _ = client([FakeResponse(200, raise_on_json=True)])
        with pytest.raises(CrawlError):
            api.fetch_comments("b", "p")

    def test_max_pages(self):
        api, session = client([
            page([item("c1", "a", "1")], next_params={"after": "c1"}),
            page([item("c2", "a", "2")], next_params={"after": "c2"}),
        ])
        assert len(api.fetch_comments("b", "p", max_pages=1)) == 1
        assert len(session.calls) == 1

    def test_async_wrapper(self):
        api, _ = client([page([item("c1", "a", "1개")])])
        comments = asyncio.run(api.fetch_comments_async("b", "p"))
        assert comments[0].post_id == "p"

    def test_missing_comment_key_gets_positional_id(self):
        keyless = {"author": {"name": "a"}, "content": "1번 1개"}
        api, _ = client([
            page([item("c1", "a", "1개"), keyless], next_params={"after": "x"}),
            page([keyless]),
        ])
        ids = [c.comment_id for c in api.fetch_comments("b", "p")]
        assert ids == ["p_c1", "p_comment_1", "p_comment_2"]

    def test_same_id_as_page_parsing(self):
        api, _ = client([page([item("AAA", "김고객", "1번 1개")])])
        [from_api] = api.fetch_comments("band_key", "p1")
        [from_page] = parse_comments(f'<div>{comment_item("AAA", "김고객", "1번 1개")}</div>', "p1")
        assert from_api.comment_id == from_page.comment_id == "p1_AAA"
