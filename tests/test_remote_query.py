import asyncio
import json
import unittest

import httpx

from resource_query.client.page_result import PageResult
from resource_query.client.remote_query import RemoteQuery, flatten_params
from resource_query.core.errors import QueryCancelled, UnexpectedResponseError
from tests.app_factory import create_app
from tests.base import make_session_factory


def _page_payload(page, last_page=3, per_page=2):
    return {
        "data": [{"id": page * 10 + i} for i in range(per_page)],
        "meta": {"current_page": page, "last_page": last_page, "per_page": per_page, "total": last_page * per_page},
        "applied_filters": ["status"],
        "order_by": [["created_at", "desc"]],
    }


class _Recorder:
    """Mock transport handler that remembers every request it served."""

    def __init__(self, responder=None):
        self.requests = []
        self.responder = responder or (lambda request: httpx.Response(200, json=_page_payload(1)))

    def __call__(self, request):
        self.requests.append(request)
        return self.responder(request)


class FlattenParamsTests(unittest.TestCase):
    def test_nested_values_become_bracket_keys(self):
        self.assertEqual(
            flatten_params({"status": "active", "tags": ["a", "b"], "range": {"from": 1}}, "filters"),
            {"filters[status]": "active", "filters[tags][0]": "a", "filters[tags][1]": "b", "filters[range][from]": 1},
        )

    def test_without_prefix_keys_stay_flat(self):
        self.assertEqual(flatten_params({"status": "active"}), {"status": "active"})


class RemoteQueryBuildTests(unittest.TestCase):
    def test_to_params(self):
        query = (
            RemoteQuery("/articles")
            .filter("status", "active")
            .filter("published", True)
            .order_by("created_at", "desc")
            .order_by("title")
        )
        query.page = 2
        query.page_size = 25
        self.assertEqual(
            query.to_params(),
            {
                "filters[status]": "active",
                "filters[published]": "1",
                "order_by": "created_at:desc,title:asc",
                "page": 2,
                "per_page": 25,
            },
        )

    def test_flat_filter_parameter(self):
        query = RemoteQuery("/articles", filter_parameter="", filters={"status": "draft"})
        self.assertEqual(query.to_params(), {"status": "draft", "page": 1})

    def test_custom_parameter_names(self):
        query = RemoteQuery(
            "/articles",
            filters={"q": "x"},
            page_size=5,
            filter_parameter="f",
            order_parameter="sort",
            page_parameter="p",
            page_size_parameter="limit",
        ).order_by("id")
        self.assertEqual(query.to_params(), {"f[q]": "x", "sort": "id:asc", "p": 1, "limit": 5})

    def test_get_request_uses_query_string(self):
        method, kwargs = RemoteQuery("/articles").filter("status", "active").build_request()
        self.assertEqual(method, "GET")
        self.assertEqual(kwargs, {"params": {"filters[status]": "active", "page": 1}})

    def test_other_methods_are_tunnelled_through_post(self):
        method, kwargs = RemoteQuery("/articles", "patch").build_request()
        self.assertEqual(method, "POST")
        self.assertEqual(kwargs["json"], {"page": 1, "_method": "PATCH"})

    def test_clone_is_independent(self):
        query = RemoteQuery("/articles").filter("tags", ["a"]).order_by("title")
        copy = query.clone()
        copy.filters["tags"].append("b")
        copy.order_by("id", "desc")
        copy.page = 4
        self.assertEqual(query.filters, {"tags": ["a"]})
        self.assertEqual(query.order_by_tokens, [("title", "asc")])
        self.assertEqual(query.page, 1)
        self.assertEqual(query.clone().to_wire(), query.to_wire())

    def test_reset_query(self):
        query = RemoteQuery("/articles").filter("status", "x").order_by("id")
        query.page = 3
        query.reset_query()
        self.assertEqual(query.to_params(), {"page": 1})

    def test_is_cancel(self):
        self.assertTrue(RemoteQuery.is_cancel(QueryCancelled()))
        self.assertFalse(RemoteQuery.is_cancel(RuntimeError("boom")))


class RemoteQueryExecutionTests(unittest.IsolatedAsyncioTestCase):
    async def test_get_sends_request_and_returns_payload(self):
        recorder = _Recorder()
        query = RemoteQuery("http://api.test/articles", transport=httpx.MockTransport(recorder))
        query.filter("status", "active").order_by("created_at", "desc")
        payload = await query.get()
        self.assertEqual(payload["meta"]["current_page"], 1)
        request = recorder.requests[0]
        self.assertEqual(request.method, "GET")
        self.assertEqual(request.url.params["filters[status]"], "active")
        self.assertEqual(request.url.params["order_by"], "created_at:desc")

    async def test_post_body_carries_method(self):
        recorder = _Recorder()
        query = RemoteQuery("http://api.test/articles", "put", transport=httpx.MockTransport(recorder))
        await query.filter("status", "draft").get()
        request = recorder.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(json.loads(request.content), {"filters[status]": "draft", "page": 1, "_method": "PUT"})

    async def test_shared_client_is_used(self):
        recorder = _Recorder()
        async with httpx.AsyncClient(base_url="http://api.test", transport=httpx.MockTransport(recorder)) as client:
            await RemoteQuery("/articles", client=client).get()
        self.assertEqual(str(recorder.requests[0].url), "http://api.test/articles?page=1")

    async def test_non_json_response_raises(self):
        recorder = _Recorder(lambda request: httpx.Response(200, text="<html>"))
        query = RemoteQuery("http://api.test/articles", transport=httpx.MockTransport(recorder))
        with self.assertRaises(UnexpectedResponseError):
            await query.get()

    async def test_empty_payload_raises(self):
        recorder = _Recorder(lambda request: httpx.Response(200, json={}))
        query = RemoteQuery("http://api.test/articles", transport=httpx.MockTransport(recorder))
        with self.assertRaises(UnexpectedResponseError) as ctx:
            await query.get()
        self.assertEqual(ctx.exception.response.status_code, 200)

    async def test_http_errors_propagate(self):
        recorder = _Recorder(lambda request: httpx.Response(500, json={"detail": "boom"}))
        query = RemoteQuery("http://api.test/articles", transport=httpx.MockTransport(recorder))
        with self.assertRaises(httpx.HTTPStatusError):
            await query.get()

    async def test_cancelled_source_short_circuits(self):
        recorder = _Recorder()
        query = RemoteQuery("http://api.test/articles", transport=httpx.MockTransport(recorder))
        cancel = RemoteQuery.cancel_source()
        cancel.cancel("navigated away")
        with self.assertRaises(QueryCancelled) as ctx:
            await query.get(cancel)
        self.assertEqual(ctx.exception.reason, "navigated away")
        self.assertEqual(recorder.requests, [])

    async def test_cancel_while_in_flight(self):
        started = asyncio.Event()

        async def slow_handler(request):
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, json=_page_payload(1))

        query = RemoteQuery("http://api.test/articles", transport=httpx.MockTransport(slow_handler))
        cancel = query.cancel_source()
        task = asyncio.create_task(query.get(cancel))
        await started.wait()
        cancel.cancel()
        with self.assertRaises(QueryCancelled) as ctx:
            await task
        self.assertTrue(query.is_cancel(ctx.exception))


class PageResultTests(unittest.IsolatedAsyncioTestCase):
    def _query(self, recorder):
        return RemoteQuery("http://api.test/articles", transport=httpx.MockTransport(recorder))

    async def test_result_exposes_page_fields(self):
        result = await self._query(_Recorder()).get_result()
        self.assertIsInstance(result, PageResult)
        self.assertEqual(len(result), 2)
        self.assertEqual([row["id"] for row in result], [10, 11])
        self.assertEqual(result.order_by, [("created_at", "desc")])
        self.assertEqual((result.current_page, result.last_page, result.per_page, result.total), (1, 3, 2, 6))
        self.assertFalse(result.has_prev_page())
        self.assertTrue(result.has_next_page())
        self.assertIs(result.fetch_prev_page(), False)

    async def test_fetch_next_page_requests_following_page(self):
        recorder = _Recorder(lambda request: httpx.Response(200, json=_page_payload(int(request.url.params["page"]))))
        query = self._query(recorder).filter("status", "active")
        first = await query.get_result()
        second = await first.fetch_next_page()
        self.assertEqual(second.current_page, 2)
        self.assertEqual(recorder.requests[-1].url.params["filters[status]"], "active")
        third = await second.fetch_next_page()
        self.assertFalse(third.has_next_page())
        self.assertIs(third.fetch_next_page(), False)
        previous = await third.fetch_prev_page()
        self.assertEqual(previous.current_page, 2)
        self.assertEqual(query.page, 1)

    async def test_page_navigation_can_be_cancelled(self):
        recorder = _Recorder()
        first = await self._query(recorder).get_result()
        cancel = RemoteQuery.cancel_source()
        cancel.cancel("closed")
        with self.assertRaises(QueryCancelled) as ctx:
            await first.fetch_next_page(cancel)
        self.assertEqual(ctx.exception.reason, "closed")
        self.assertEqual(len(recorder.requests), 1)

    async def test_unpaged_payload_has_no_navigation(self):
        recorder = _Recorder(lambda request: httpx.Response(200, json={"data": [1, 2, 3]}))
        result = await self._query(recorder).get_result()
        self.assertIsNone(result.meta)
        self.assertFalse(result.has_next_page())
        self.assertIs(result.fetch_next_page(), False)


class RemoteQueryAgainstAppTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, SessionLocal = make_session_factory()
        self.client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=create_app(SessionLocal)),
            base_url="http://testserver",
        )

    async def asyncTearDown(self):
        await self.client.aclose()
        self.engine.dispose()

    async def test_round_trip_through_the_server(self):
        query = RemoteQuery("/articles", client=self.client, page_size=10)
        query.filter("status", "active").order_by("created_at", "desc")
        query.page = 2
        result = await query.get_result()
        self.assertEqual([row["id"] for row in result], list(range(30, 0, -3)))
        self.assertEqual(result.applied_filters, ["status"])
        self.assertEqual(result.order_by, [("created_at", "desc")])
        self.assertTrue(result.has_prev_page())
        self.assertFalse(result.has_next_page())
        first = await result.fetch_prev_page()
        self.assertEqual(first.data[0]["id"], 60)

    async def test_method_tunnelling_reaches_the_server(self):
        query = RemoteQuery("/articles/method", "delete", client=self.client, filters={"status": "draft"})
        payload = await query.get()
        self.assertEqual(payload["method"], "DELETE")
        self.assertEqual(payload["filters"], {"status": "draft"})


if __name__ == "__main__":
    unittest.main()
