import json
import unittest
import httpx
from raindrop_sync.clients.raindrop_client import RaindropClient, parse_item

def item(n, last_update, title=None):
    return {
        "_id": n,
        "title": title or f"Bookmark {n}",
        "link": f"https://example.com/{n}",
        "excerpt": "line one\nline two",
        "tags": ["a", "b"],
        "created": "2023-12-01T00:00:00.000Z",
        "lastUpdate": last_update,
        "domain": "example.com",
        "collection": {"$id": 5, "title": "Reading"},
    }

def ts(day):
    return f"2024-01-{day:02d}T00:00:00.000Z"

class FakeRaindropAPI:
    """Serves /raindrops/0 pages from an in-memory list, newest-modified first when sorted."""
    def __init__(self, items, fail_page=None, status=200, count=None, omit_count=False):
        self.items = items
        self.fail_page = fail_page
        self.status = status
        self.count = count
        self.omit_count = omit_count
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        page = int(request.url.params.get("page", 0))
        perpage = int(request.url.params.get("perpage", 25))
        if self.fail_page is not None and page == self.fail_page:
            return httpx.Response(self.status, json={"result": False})
        items = list(self.items)
        if request.url.params.get("sort") == "-lastUpdate":
            items.sort(key=lambda i: i["lastUpdate"], reverse=True)
        chunk = items[page * perpage:(page + 1) * perpage]
        payload = {"result": True, "items": chunk}
        if not self.omit_count:
            payload["count"] = len(self.items) if self.count is None else self.count
        return httpx.Response(200, json=payload)

class TestRaindropClient(unittest.IsolatedAsyncioTestCase):
    def make(self, api, token="secret", page_size=2):
        client = RaindropClient(token=token, base_url="https://api.test/rest/v1", page_size=page_size,
                                timeout=5, transport=httpx.MockTransport(api))
        self.addAsyncCleanup(client.aclose)
        return client

    async def test_fetch_all_pages_until_count(self):
        api = FakeRaindropAPI([item(i, ts(i)) for i in range(1, 6)])
        client = self.make(api)

        result = await client.fetch_all()

        self.assertIsNone(result.error)
        self.assertEqual(result.count, 5)
        self.assertEqual([b.id for b in result.bookmarks], ["1", "2", "3", "4", "5"])
        self.assertEqual(len(api.requests), 3)
        self.assertEqual(api.requests[0].headers["Authorization"], "Bearer secret")
        self.assertEqual(api.requests[0].url.path, "/rest/v1/raindrops/0")

    async def test_fetch_all_fails_on_any_page(self):
        api = FakeRaindropAPI([item(i, ts(i)) for i in range(1, 6)], fail_page=1, status=502)
        client = self.make(api)

        result = await client.fetch_all()

        self.assertEqual(result.bookmarks, [])
        self.assertIn("502", result.error)

    async def test_fetch_all_missing_count_is_error(self):
        api = FakeRaindropAPI([item(i, ts(i)) for i in range(1, 4)], omit_count=True)
        client = self.make(api)

        result = await client.fetch_all()

        self.assertEqual(result.bookmarks, [])
        self.assertIn("missing count", result.error)
        self.assertEqual(len(api.requests), 1)

    async def test_fetch_all_short_collection_is_error(self):
        # Server claims 6 but only 3 remain when paging reaches the end
        api = FakeRaindropAPI([item(i, ts(i)) for i in range(1, 4)], count=6)
        client = self.make(api)

        result = await client.fetch_all()

        self.assertEqual(result.bookmarks, [])
        self.assertIn("empty", result.error)
        self.assertEqual(len(api.requests), 3)

    async def test_fetch_all_empty_collection(self):
        api = FakeRaindropAPI([])
        client = self.make(api)

        result = await client.fetch_all()

        self.assertIsNone(result.error)
        self.assertEqual(result.count, 0)
        self.assertEqual(len(api.requests), 1)

    async def test_fetch_since_stops_at_watermark(self):
        api = FakeRaindropAPI([item(i, ts(i)) for i in range(1, 10)])
        client = self.make(api)

        result = await client.fetch_since(ts(6))

        self.assertIsNone(result.error)
        self.assertEqual([b.id for b in result.bookmarks], ["9", "8", "7"])
        self.assertEqual(result.count, 9)
        # pages: [9,8] [7,6] -> stop, oldest on page is not newer than the watermark
        self.assertEqual(len(api.requests), 2)
        self.assertEqual(api.requests[0].url.params["sort"], "-lastUpdate")

    async def test_fetch_since_nothing_new(self):
        api = FakeRaindropAPI([item(1, ts(1))])
        client = self.make(api)
        result = await client.fetch_since(ts(1))
        self.assertEqual(result.bookmarks, [])
        self.assertIsNone(result.error)

    async def test_fetch_metadata(self):
        api = FakeRaindropAPI([item(i, ts(i)) for i in range(1, 4)])
        client = self.make(api)

        meta = await client.fetch_metadata()

        self.assertEqual(meta.count, 3)
        self.assertEqual(meta.last_update, ts(3))
        self.assertEqual(api.requests[0].url.params["perpage"], "1")

    async def test_fetch_metadata_missing_count_is_error(self):
        api = FakeRaindropAPI([item(1, ts(1))], omit_count=True)
        client = self.make(api)

        meta = await client.fetch_metadata()

        self.assertIn("missing count", meta.error)

    async def test_malformed_payload_is_error(self):
        client = self.make(lambda request: httpx.Response(200, content=b"<html>"))
        result = await client.fetch_all()
        self.assertIn("Malformed", result.error)

    async def test_network_error_is_error(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)
        client = self.make(boom)
        meta = await client.fetch_metadata()
        self.assertIn("connection refused", meta.error)

    async def test_missing_token_skips_request(self):
        api = FakeRaindropAPI([])
        client = self.make(api, token="")
        self.assertEqual((await client.fetch_all()).error, "No API token")
        self.assertEqual((await client.fetch_since(ts(1))).error, "No API token")
        self.assertEqual((await client.fetch_metadata()).error, "No API token")
        self.assertEqual(api.requests, [])

class TestParseItem(unittest.TestCase):
    def test_maps_api_fields(self):
        b = parse_item(item(42, "2024-01-01T00:00:00Z"))
        self.assertEqual(b.id, "42")
        self.assertEqual(b.url, "https://example.com/42")
        self.assertEqual(b.collection, "Reading")
        self.assertEqual(b.last_update, "2024-01-01T00:00:00.000Z")

    def test_defaults(self):
        raw = {"_id": 1, "link": "https://x.y", "title": "", "collection": {"$id": -1}}
        b = parse_item(raw)
        self.assertEqual(b.title, "Untitled")
        self.assertEqual(b.collection, "Unsorted")
        self.assertEqual(json.loads(b.model_dump_json())["tags"], [])

if __name__ == '__main__':
    unittest.main()
