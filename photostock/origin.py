import logging
import mimetypes
import re
import urllib.parse
from pathlib import Path, PurePosixPath

import httpx
from fastapi.responses import FileResponse, StreamingResponse

from photostock.config import ASSET_ROOT
from photostock.models import Image

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
PASSTHROUGH_HEADERS = ("content-range", "accept-ranges")


class AssetFetchError(Exception):
    """The origin could not deliver the bytes (network, upstream status, missing file)."""


def is_full_url(v: str) -> bool:
    return v.startswith("http://") or v.startswith("https://")


def download_filename(image: Image) -> str:
    name = (image.name or "").strip() or f"image-{image.id}"
    suffix = PurePosixPath(urllib.parse.urlsplit(image.url).path).suffix
    if suffix and not name.lower().endswith(suffix.lower()):
        name += suffix
    return name


def content_disposition(filename: str) -> str:
    fallback = re.sub(r'[^A-Za-z0-9._ -]', "_", filename) or "download"
    quoted = urllib.parse.quote(filename)
    return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{quoted}'


class AssetOrigin:
    """
    Where purchased bytes live. Remote URLs are proxied through httpx in
    chunks; relative paths are served from asset_root.
    """

    def __init__(self, asset_root: str | Path = ASSET_ROOT, transport: httpx.AsyncBaseTransport | None = None,
                 timeout: float = 30.0):
        self.asset_root = Path(asset_root)
        self._transport = transport
        self._timeout = timeout

    def resolve(self, image: Image) -> tuple[str, str]:
        location = (image.url or "").strip()
        content_type = image.content_type
        if not content_type:
            guessed, _ = mimetypes.guess_type(urllib.parse.urlsplit(location).path)
            content_type = guessed or DEFAULT_CONTENT_TYPE
        return location, content_type

    def local_path(self, location: str) -> Path:
        root = self.asset_root.resolve()
        path = (root / location.lstrip("/")).resolve()
        if not path.is_relative_to(root):
            raise AssetFetchError(f"asset path escapes asset root: {location}")
        if not path.is_file():
            raise AssetFetchError(f"asset file missing: {location}")
        return path

    async def stream(self, image: Image, range_header: str | None = None):
        location, content_type = self.resolve(image)
        headers = {"Content-Disposition": content_disposition(download_filename(image))}

        if not is_full_url(location):
            path = self.local_path(location)
            return FileResponse(path, media_type=content_type, headers=headers)

        req_headers = {}
        if range_header:
            req_headers["Range"] = range_header

        client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport, follow_redirects=True)
        try:
            r = await client.send(client.build_request("GET", location, headers=req_headers), stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            raise AssetFetchError(f"fetch failed for image {image.id}: {e}") from e

        if r.status_code >= 400:
            await r.aclose()
            await client.aclose()
            raise AssetFetchError(f"origin returned {r.status_code} for image {image.id}")

        for h in PASSTHROUGH_HEADERS:
            if h in r.headers:
                headers[h.title()] = r.headers[h]

        async def gen():
            # closes upstream on completion and on client disconnect
            try:
                async for c in r.aiter_bytes():
                    yield c
            finally:
                await r.aclose()
                await client.aclose()

        return StreamingResponse(
            gen(),
            status_code=206 if r.status_code == 206 else 200,
            headers=headers,
            media_type=content_type,
        )
