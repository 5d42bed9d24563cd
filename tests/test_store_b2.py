"""Unit tests for the B2 store client.

All tests run against an ``httpx.MockTransport`` that imitates the B2
native API, so no credentials or network access are required.
"""

import base64
import hashlib
import json

import httpx
import pytest

from b2fs.errors import HashMismatch, NotFound, TransportError
from b2fs.models import ObjectRecord, UploadTarget
from b2fs.store.b2 import B2StoreClient

API = "https://api.test"
DOWNLOAD = "https://dl.test"


def _file_json(name: str, **overrides) -> dict:
    data = {
        "fileId": f"id-{name}",
        "fileName": name,
        "contentLength": 3,
        "contentType": "text/plain",
        "contentSha1": "abc",
        "uploadTimestamp": 1700000000000,
        "action": "upload",
        "fileInfo": {},
    }
    data.update(overrides)
    return data


class FakeB2:
    """Routes requests to per-endpoint handlers and records them.

    Attributes:
        requests: Every request received, in order.
        routes: Path -> callable(request) -> httpx.Response overrides.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict = {}
        self.buckets = [{"bucketId": "bucket-1", "bucketName": "media"}]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.routes:
            return self.routes[path](request)
        if path == "/b2api/v2/b2_authorize_account":
            return httpx.Response(
                200,
                json={
                    "accountId": "acct",
                    "authorizationToken": "tok",
                    "apiUrl": API,
                    "downloadUrl": DOWNLOAD,
                },
            )
        if path == "/b2api/v2/b2_list_buckets":
            return httpx.Response(200, json={"buckets": self.buckets})
        return httpx.Response(404, json={"status": 404, "code": "not_found", "message": path})

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def fake() -> FakeB2:
    return FakeB2()


@pytest.fixture
async def client(fake):
    c = B2StoreClient(
        "key-id", "app-key", "media", api_url=API, transport=httpx.MockTransport(fake)
    )
    await c.init()
    yield c
    await c.close()


class TestInit:
    """Tests for init() and close()."""

    async def test_authorizes_and_resolves_bucket(self, client, fake):
        auth = fake.requests[0]
        expected = base64.b64encode(b"key-id:app-key").decode()
        assert auth.headers["Authorization"] == f"Basic {expected}"
        assert client.bucket_id == "bucket-1"
        assert fake.bodies("/b2api/v2/b2_list_buckets") == [
            {"accountId": "acct", "bucketName": "media"}
        ]
        assert fake.requests[1].headers["Authorization"] == "tok"

    async def test_missing_bucket(self, fake):
        fake.buckets = []
        c = B2StoreClient("k", "s", "media", api_url=API, transport=httpx.MockTransport(fake))
        with pytest.raises(ValueError, match="Cannot access B2 bucket 'media'"):
            await c.init()

    async def test_bad_credentials(self, fake):
        fake.routes["/b2api/v2/b2_authorize_account"] = lambda r: httpx.Response(
            401, json={"status": 401, "code": "unauthorized", "message": "bad key"}
        )
        c = B2StoreClient("k", "s", "media", api_url=API, transport=httpx.MockTransport(fake))
        with pytest.raises(TransportError) as exc_info:
            await c.init()
        assert exc_info.value.http_status == 401
        assert exc_info.value.code == "unauthorized"

    async def test_close_is_idempotent(self, client):
        await client.close()
        await client.close()


class TestListObjects:
    """Tests for list_objects()."""

    async def test_follows_pagination(self, client, fake):
        pages = iter(
            [
                {"files": [_file_json("p/a")], "nextFileName": "p/b"},
                {"files": [_file_json("p/b"), _file_json("p/c")], "nextFileName": None},
            ]
        )
        fake.routes["/b2api/v2/b2_list_file_names"] = lambda r: httpx.Response(
            200, json=next(pages)
        )

        records = await client.list_objects(prefix="p/")

        assert [r.key for r in records] == ["p/a", "p/b", "p/c"]
        bodies = fake.bodies("/b2api/v2/b2_list_file_names")
        assert bodies[0] == {"bucketId": "bucket-1", "maxFileCount": 1000, "prefix": "p/"}
        assert bodies[1]["startFileName"] == "p/b"

    async def test_hide_markers_are_flagged(self, client, fake):
        fake.routes["/b2api/v2/b2_list_file_names"] = lambda r: httpx.Response(
            200,
            json={
                "files": [
                    _file_json("x", action="hide", contentType="application/x-bz-hide-marker")
                ],
                "nextFileName": None,
            },
        )
        (record,) = await client.list_objects()
        assert record.is_hidden is True

    async def test_exact_name(self, client, fake):
        fake.routes["/b2api/v2/b2_list_file_names"] = lambda r: httpx.Response(
            200, json={"files": [_file_json("a.txt.bak")], "nextFileName": None}
        )
        assert await client.list_objects(exact_name="a.txt") == []
        body = fake.bodies("/b2api/v2/b2_list_file_names")[0]
        assert body == {"bucketId": "bucket-1", "startFileName": "a.txt", "maxFileCount": 1}


class TestListObjectVersions:
    """Tests for list_object_versions()."""

    async def test_follows_name_and_id_pagination(self, client, fake):
        pages = iter(
            [
                {
                    "files": [_file_json("k", fileId="v3"), _file_json("k", fileId="v2")],
                    "nextFileName": "k",
                    "nextFileId": "v1",
                },
                {
                    "files": [_file_json("k", fileId="v1"), _file_json("k.bak", fileId="b1")],
                    "nextFileName": None,
                    "nextFileId": None,
                },
            ]
        )
        fake.routes["/b2api/v2/b2_list_file_versions"] = lambda r: httpx.Response(
            200, json=next(pages)
        )

        records = await client.list_object_versions(exact_name="k")

        assert [r.file_id for r in records] == ["v3", "v2", "v1"]
        bodies = fake.bodies("/b2api/v2/b2_list_file_versions")
        assert bodies[0] == {"bucketId": "bucket-1", "maxFileCount": 1000, "prefix": "k"}
        assert bodies[1]["startFileName"] == "k"
        assert bodies[1]["startFileId"] == "v1"

    async def test_prefix_keeps_all_names(self, client, fake):
        fake.routes["/b2api/v2/b2_list_file_versions"] = lambda r: httpx.Response(
            200,
            json={"files": [_file_json("d/a"), _file_json("d/b")], "nextFileName": None},
        )
        records = await client.list_object_versions(prefix="d/")
        assert [r.key for r in records] == ["d/a", "d/b"]


class TestLargeFile:
    """Tests for the large-file endpoints."""

    async def test_start_large_upload(self, client, fake):
        fake.routes["/b2api/v2/b2_start_large_file"] = lambda r: httpx.Response(
            200, json={"fileId": "large-1"}
        )
        file_id = await client.start_large_upload(
            "v/clip.mp4", "video/mp4", {"src_last_modified_millis": "5"}
        )
        assert file_id == "large-1"
        assert fake.bodies("/b2api/v2/b2_start_large_file") == [
            {
                "bucketId": "bucket-1",
                "fileName": "v/clip.mp4",
                "contentType": "video/mp4",
                "fileInfo": {"src_last_modified_millis": "5"},
            }
        ]

    async def test_get_upload_part_target(self, client, fake):
        fake.routes["/b2api/v2/b2_get_upload_part_url"] = lambda r: httpx.Response(
            200,
            json={
                "fileId": "large-1",
                "uploadUrl": "https://pod.test/b2api/v2/b2_upload_part/large-1",
                "authorizationToken": "part-tok",
            },
        )
        target = await client.get_upload_part_target("large-1")
        assert target == UploadTarget(
            upload_url="https://pod.test/b2api/v2/b2_upload_part/large-1",
            auth_token="part-tok",
        )

    async def test_upload_part_headers(self, client, fake):
        fake.routes["/b2api/v2/b2_upload_part/large-1"] = lambda r: httpx.Response(
            200, json={"partNumber": 2}
        )
        data = b"part-bytes"
        sha1 = hashlib.sha1(data).hexdigest()
        target = UploadTarget("https://pod.test/b2api/v2/b2_upload_part/large-1", "part-tok")

        await client.upload_part(target, 2, data, sha1)

        request = fake.requests[-1]
        assert request.headers["Authorization"] == "part-tok"
        assert request.headers["X-Bz-Part-Number"] == "2"
        assert request.headers["Content-Length"] == str(len(data))
        assert request.headers["X-Bz-Content-Sha1"] == sha1
        assert request.content == data

    async def test_upload_part_failure(self, client, fake):
        fake.routes["/upload"] = lambda r: httpx.Response(
            503, json={"status": 503, "code": "service_unavailable", "message": "busy"}
        )
        with pytest.raises(TransportError) as exc_info:
            await client.upload_part(UploadTarget("https://pod.test/upload", "t"), 1, b"x", "h")
        assert exc_info.value.http_status == 503

    async def test_finish_large_upload(self, client, fake):
        fake.routes["/b2api/v2/b2_finish_large_file"] = lambda r: httpx.Response(
            200, json=_file_json("v/clip.mp4", contentLength=12_000_000, contentSha1="none")
        )
        record = await client.finish_large_upload("large-1", ["h1", "h2"])
        assert record.key == "v/clip.mp4"
        assert record.size == 12_000_000
        assert fake.bodies("/b2api/v2/b2_finish_large_file") == [
            {"fileId": "large-1", "partSha1Array": ["h1", "h2"]}
        ]

    async def test_finish_hash_mismatch(self, client, fake):
        fake.routes["/b2api/v2/b2_finish_large_file"] = lambda r: httpx.Response(
            400,
            json={"status": 400, "code": "bad_request", "message": "Part sha1 does not match"},
        )
        with pytest.raises(HashMismatch):
            await client.finish_large_upload("large-1", ["h1", "h2"])


class TestSmallUpload:
    async def test_upload_small_object(self, client, fake):
        fake.routes["/b2api/v2/b2_get_upload_url"] = lambda r: httpx.Response(
            200,
            json={
                "bucketId": "bucket-1",
                "uploadUrl": "https://pod.test/b2api/v2/b2_upload_file/bucket-1",
                "authorizationToken": "up-tok",
            },
        )
        fake.routes["/b2api/v2/b2_upload_file/bucket-1"] = lambda r: httpx.Response(
            200, json=_file_json("dir/my file.txt")
        )
        data = b"abc"
        sha1 = hashlib.sha1(data).hexdigest()

        record = await client.upload_small_object("dir/my file.txt", data, sha1, "text/plain", 77)

        assert record.key == "dir/my file.txt"
        request = fake.requests[-1]
        assert request.headers["Authorization"] == "up-tok"
        assert request.headers["X-Bz-File-Name"] == "dir/my%20file.txt"
        assert request.headers["Content-Type"] == "text/plain"
        assert request.headers["X-Bz-Content-Sha1"] == sha1
        assert request.headers["X-Bz-Info-src_last_modified_millis"] == "77"
        assert request.content == data


class TestCopyDelete:
    async def test_copy_object(self, client, fake):
        fake.routes["/b2api/v2/b2_copy_file"] = lambda r: httpx.Response(
            200, json=_file_json("new.txt")
        )
        record = await client.copy_object("id-old", "new.txt")
        assert record.key == "new.txt"
        assert fake.bodies("/b2api/v2/b2_copy_file") == [
            {"sourceFileId": "id-old", "fileName": "new.txt"}
        ]

    async def test_delete_object(self, client, fake):
        fake.routes["/b2api/v2/b2_delete_file_version"] = lambda r: httpx.Response(
            200, json={"fileId": "id-a", "fileName": "a"}
        )
        await client.delete_object(ObjectRecord(key="a", file_id="id-a"))
        assert fake.bodies("/b2api/v2/b2_delete_file_version") == [
            {"fileName": "a", "fileId": "id-a"}
        ]

    async def test_delete_missing_file(self, client, fake):
        fake.routes["/b2api/v2/b2_delete_file_version"] = lambda r: httpx.Response(
            400, json={"status": 400, "code": "file_not_present", "message": "gone"}
        )
        with pytest.raises(NotFound):
            await client.delete_object(ObjectRecord(key="a", file_id="id-a"))


class TestDownload:
    async def test_download_object(self, client, fake):
        fake.routes["/file/media/dir/a b.txt"] = lambda r: httpx.Response(200, content=b"body")
        assert await client.download_object("dir/a b.txt") == b"body"
        request = fake.requests[-1]
        assert request.url.raw_path == b"/file/media/dir/a%20b.txt"
        assert request.headers["Authorization"] == "tok"

    async def test_download_missing(self, client):
        with pytest.raises(NotFound):
            await client.download_object("nope")

    async def test_stream(self, client, fake):
        body = b"s" * (150 * 1024)
        fake.routes["/file/media/big"] = lambda r: httpx.Response(200, content=body)

        stream = await client.open_download_stream("big")
        received = b"".join([chunk async for chunk in stream])
        assert received == body

    async def test_stream_missing_raises_before_iteration(self, client):
        with pytest.raises(NotFound):
            await client.open_download_stream("nope")

    async def test_network_error(self, client, fake):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake.routes["/file/media/x"] = boom
        with pytest.raises(TransportError, match="connection refused"):
            await client.download_object("x")
