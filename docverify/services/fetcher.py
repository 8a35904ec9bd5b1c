"""Document download from the storage/CDN layer."""

import logging
from dataclasses import dataclass

import httpx

from docverify.core.config import settings
from docverify.core.exceptions import DocumentFetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadedFile:
    content: bytes
    content_type: str | None
    source_url: str

    @property
    def is_pdf(self) -> bool:
        content_type = (self.content_type or "").lower()
        return "pdf" in content_type or self.source_url.lower().split("?")[0].endswith(".pdf")


async def download_document(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> DownloadedFile:
    """GET *url* with a bounded timeout.

    Raises :class:`DocumentFetchError` on transport errors, timeouts, and any
    status outside 2xx/3xx.
    """
    timeout = settings.fetch_timeout_seconds if timeout is None else timeout
    try:
        if client is not None:
            response = await client.get(url, timeout=timeout, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as http:
                response = await http.get(url)
    except httpx.TimeoutException as exc:
        raise DocumentFetchError(f"Timed out fetching document after {timeout:g}s") from exc
    except httpx.HTTPError as exc:
        raise DocumentFetchError(f"Unable to fetch document: {exc}") from exc

    if not 200 <= response.status_code < 400:
        raise DocumentFetchError(
            f"Document download failed with HTTP {response.status_code}"
        )

    content_type = response.headers.get("content-type")
    logger.info(
        "Downloaded document (%d bytes, content_type=%s)", len(response.content), content_type,
    )
    return DownloadedFile(content=response.content, content_type=content_type, source_url=url)
