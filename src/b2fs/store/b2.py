"""Backblaze B2 store client for b2fs.

Talks to the B2 native API (v2) over ``httpx.AsyncClient``. The client
authorizes once in ``init()`` and resolves the configured bucket name to
its id; token refresh is not handled, an expired token surfaces as a
``TransportError`` like any other failed call.

Endpoints used:
    b2_authorize_account, b2_list_buckets, b2_list_file_names,
    b2_start_large_file, b2_get_upload_part_url, b2_finish_large_file,
    b2_get_upload_url, b2_copy_file, b2_delete_file_version,
    plus the returned upload URLs and ``/file/<bucket>/<name>`` downloads.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import httpx

from b2fs.errors import TransportError, error_from_response
from b2fs.models import SRC_LAST_MODIFIED_INFO, ObjectRecord, UploadTarget

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

# b2_list_file_names accepts at most 10000 per call; 1000 is the cheapest
# class C transaction size.
_LIST_PAGE_SIZE = 1000

_API_PATH = "/b2api/v2"


def _encode_file_name(name: str) -> str:
    """Percent-encode a file name for headers and download URLs."""
    return quote(name, safe="/")


def _json_body(resp: httpx.Response) -> dict[str, Any] | None:
    try:
        body = resp.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class B2StoreClient:
    """Store client backed by a Backblaze B2 bucket.

    Attributes:
        bucket_name: The B2 bucket name.
        bucket_id: The bucket id, resolved by ``init()``.
    """

    def __init__(
        self,
        key_id: str,
        application_key: str,
        bucket_name: str,
        api_url: str = "https://api.backblazeb2.com",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client without touching the network.

        Args:
            key_id: B2 application key id.
            application_key: B2 application key.
            bucket_name: Name of the bucket to operate on.
            api_url: Authorization endpoint base URL.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        self.key_id = key_id
        self.application_key = application_key
        self.bucket_name = bucket_name
        self.bucket_id = ""
        self._auth_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._account_id = ""
        self._auth_token = ""
        self._api_url = ""
        self._download_url = ""

    async def init(self) -> None:
        """Authorize the account and resolve the bucket id.

        Raises:
            ValueError: If the bucket does not exist or is not accessible
                with these credentials.
            TransportError: If authorization fails.
        """
        self._http = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

        try:
            resp = await self._http.get(
                f"{self._auth_url}{_API_PATH}/b2_authorize_account",
                auth=(self.key_id, self.application_key),
            )
        except httpx.HTTPError as e:
            await self.close()
            raise TransportError(f"b2_authorize_account failed: {e}") from e
        if not resp.is_success:
            await self.close()
            raise error_from_response(resp.status_code, _json_body(resp))

        auth = resp.json()
        self._account_id = auth["accountId"]
        self._auth_token = auth["authorizationToken"]
        self._api_url = auth["apiUrl"].rstrip("/")
        self._download_url = auth["downloadUrl"].rstrip("/")

        try:
            data = await self._api(
                "b2_list_buckets",
                {"accountId": self._account_id, "bucketName": self.bucket_name},
            )
        except Exception:
            await self.close()
            raise
        buckets = [b for b in data.get("buckets", []) if b.get("bucketName") == self.bucket_name]
        if not buckets:
            await self.close()
            raise ValueError(f"Cannot access B2 bucket '{self.bucket_name}'")
        self.bucket_id = buckets[0]["bucketId"]

        logger.info(
            "B2 store client initialized: bucket=%s bucket_id=%s api=%s",
            self.bucket_name,
            self.bucket_id,
            self._api_url,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _post(
        self,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        key: str = "",
    ) -> dict[str, Any]:
        """POST to a B2 URL and return the decoded JSON response.

        Raises:
            B2FSError: The mapped error for a non-2xx response, or
                TransportError for network-level failures.
        """
        try:
            resp = await self._http.post(url, json=json, content=content, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"POST {url} failed: {e}") from e
        if not resp.is_success:
            raise error_from_response(resp.status_code, _json_body(resp), key)
        return _json_body(resp) or {}

    async def _api(self, endpoint: str, payload: dict[str, Any], key: str = "") -> dict[str, Any]:
        """Call a JSON API endpoint with the account token."""
        logger.debug("B2 call %s", endpoint, extra={"operation": endpoint, "key": key or None})
        return await self._post(
            f"{self._api_url}{_API_PATH}/{endpoint}",
            json=payload,
            headers={"Authorization": self._auth_token},
            key=key,
        )

    async def list_objects(
        self, prefix: str | None = None, exact_name: str | None = None
    ) -> list[ObjectRecord]:
        """List files via b2_list_file_names, following nextFileName.

        With ``exact_name`` a single page starting at that name is fetched
        and only an exact match is kept.
        """
        if exact_name is not None:
            data = await self._api(
                "b2_list_file_names",
                {
                    "bucketId": self.bucket_id,
                    "startFileName": exact_name,
                    "maxFileCount": 1,
                },
                key=exact_name,
            )
            return [
                ObjectRecord.from_b2(f)
                for f in data.get("files", [])
                if f.get("fileName") == exact_name
            ]

        records: list[ObjectRecord] = []
        payload: dict[str, Any] = {
            "bucketId": self.bucket_id,
            "maxFileCount": _LIST_PAGE_SIZE,
        }
        if prefix:
            payload["prefix"] = prefix
        while True:
            data = await self._api("b2_list_file_names", payload, key=prefix or "")
            records.extend(ObjectRecord.from_b2(f) for f in data.get("files", []))
            next_name = data.get("nextFileName")
            if not next_name:
                break
            payload["startFileName"] = next_name
        return records

    async def list_object_versions(
        self, prefix: str | None = None, exact_name: str | None = None
    ) -> list[ObjectRecord]:
        """List versions via b2_list_file_versions, following nextFileName/nextFileId.

        ``exact_name`` is sent as the prefix and the results are filtered to
        that name.
        """
        search = exact_name if exact_name is not None else prefix
        records: list[ObjectRecord] = []
        payload: dict[str, Any] = {
            "bucketId": self.bucket_id,
            "maxFileCount": _LIST_PAGE_SIZE,
        }
        if search:
            payload["prefix"] = search
        while True:
            data = await self._api("b2_list_file_versions", payload, key=search or "")
            records.extend(ObjectRecord.from_b2(f) for f in data.get("files", []))
            next_name = data.get("nextFileName")
            if not next_name:
                break
            payload["startFileName"] = next_name
            if data.get("nextFileId"):
                payload["startFileId"] = data["nextFileId"]
        if exact_name is not None:
            records = [r for r in records if r.key == exact_name]
        return records

    async def start_large_upload(
        self, key: str, content_type: str, file_info: dict[str, str] | None = None
    ) -> str:
        payload: dict[str, Any] = {
            "bucketId": self.bucket_id,
            "fileName": key,
            "contentType": content_type,
        }
        if file_info:
            payload["fileInfo"] = file_info
        data = await self._api("b2_start_large_file", payload, key=key)
        return data["fileId"]

    async def get_upload_part_target(self, file_id: str) -> UploadTarget:
        data = await self._api("b2_get_upload_part_url", {"fileId": file_id})
        return UploadTarget(
            upload_url=data["uploadUrl"], auth_token=data["authorizationToken"]
        )

    async def upload_part(
        self, target: UploadTarget, part_number: int, data: bytes, sha1_hex: str
    ) -> None:
        await self._post(
            target.upload_url,
            content=data,
            headers={
                "Authorization": target.auth_token,
                "X-Bz-Part-Number": str(part_number),
                "Content-Length": str(len(data)),
                "X-Bz-Content-Sha1": sha1_hex,
            },
        )

    async def finish_large_upload(
        self, file_id: str, part_sha1s: list[str]
    ) -> ObjectRecord:
        data = await self._api(
            "b2_finish_large_file",
            {"fileId": file_id, "partSha1Array": part_sha1s},
        )
        return ObjectRecord.from_b2(data)

    async def upload_small_object(
        self,
        key: str,
        data: bytes,
        sha1_hex: str,
        content_type: str,
        last_modified_ms: int | None = None,
    ) -> ObjectRecord:
        """Upload via b2_get_upload_url followed by a single POST."""
        target = await self._api("b2_get_upload_url", {"bucketId": self.bucket_id}, key=key)
        headers = {
            "Authorization": target["authorizationToken"],
            "X-Bz-File-Name": _encode_file_name(key),
            "Content-Type": content_type,
            "Content-Length": str(len(data)),
            "X-Bz-Content-Sha1": sha1_hex,
        }
        if last_modified_ms is not None:
            headers[f"X-Bz-Info-{SRC_LAST_MODIFIED_INFO}"] = str(last_modified_ms)
        result = await self._post(target["uploadUrl"], content=data, headers=headers, key=key)
        return ObjectRecord.from_b2(result)

    async def copy_object(self, source_file_id: str, destination_key: str) -> ObjectRecord:
        data = await self._api(
            "b2_copy_file",
            {"sourceFileId": source_file_id, "fileName": destination_key},
            key=destination_key,
        )
        return ObjectRecord.from_b2(data)

    async def delete_object(self, record: ObjectRecord) -> None:
        await self._api(
            "b2_delete_file_version",
            {"fileName": record.key, "fileId": record.file_id},
            key=record.key,
        )

    def _download_url_for(self, key: str) -> str:
        return f"{self._download_url}/file/{quote(self.bucket_name, safe='')}/{_encode_file_name(key)}"

    async def download_object(self, key: str) -> bytes:
        """Download a whole object by name.

        Raises:
            NotFound: If the object does not exist.
        """
        try:
            resp = await self._http.get(
                self._download_url_for(key),
                headers={"Authorization": self._auth_token},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Download of {key} failed: {e}") from e
        if not resp.is_success:
            raise error_from_response(resp.status_code, _json_body(resp), key)
        return resp.content

    async def open_download_stream(self, key: str) -> AsyncIterator[bytes]:
        """Open a streaming download and return a chunk iterator.

        Raises:
            NotFound: If the object does not exist.
        """
        request = self._http.build_request(
            "GET",
            self._download_url_for(key),
            headers={"Authorization": self._auth_token},
        )
        try:
            resp = await self._http.send(request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"Download of {key} failed: {e}") from e
        if not resp.is_success:
            await resp.aread()
            await resp.aclose()
            raise error_from_response(resp.status_code, _json_body(resp), key)
        return self._iter_response(resp)

    async def _iter_response(self, resp: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                yield chunk
        finally:
            await resp.aclose()
