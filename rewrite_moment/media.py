"""
Media ingress: data-URL / base64 parsing, MIME sniffing and image download.
"""

import asyncio
import base64
import binascii
import ipaddress
import logging
import re
import socket
from urllib.parse import urljoin, urlparse

import httpx

from .errors import TransientError, ValidationError
from .models import ImageBlob

logger = logging.getLogger(__name__)

DEFAULT_MIME = "image/jpeg"
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10MB, same ceiling as the upload form
MAX_REDIRECTS = 3

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*?);base64,(?P<data>.*)$", re.S)


def sniff_mime(data: bytes) -> str | None:
    """Identify an image type from its magic bytes."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def _decode_base64(payload: str) -> bytes:
    cleaned = "".join(payload.split())
    # Tolerate missing padding from hand-trimmed strings
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Image is not valid base64: {e}") from e


def parse_image(value: str) -> ImageBlob:
    """
    Build an ImageBlob from a data URL or a raw base64 string.

    Sniffed magic bytes win over a declared MIME type; when neither is
    usable the type defaults to image/jpeg.
    """
    if not value or not isinstance(value, str):
        raise ValidationError("Image data is required")

    value = value.strip()
    declared = None

    if value.startswith("data:"):
        match = _DATA_URL_RE.match(value)
        if not match:
            raise ValidationError("Malformed data URL (expected data:<mime>;base64,<data>)")
        declared = match.group("mime")
        data = _decode_base64(match.group("data"))
    else:
        data = _decode_base64(value)

    if not data:
        raise ValidationError("Image data is empty")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValidationError(f"Image exceeds {MAX_IMAGE_BYTES // (1024 * 1024)}MB limit")

    mime = sniff_mime(data)
    if mime is None:
        mime = declared if declared and declared.startswith("image/") else DEFAULT_MIME

    return ImageBlob(data=data, mime_type=mime)


async def _resolve_host(host: str) -> list[str]:
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None)
    except socket.gaierror as e:
        raise ValidationError("Image URL host cannot be resolved") from e
    return [info[4][0] for info in infos]


def _is_public(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return ip.is_global and not ip.is_multicast


async def check_public_url(url: str):
    """Reject URLs that point at loopback, private, link-local or reserved hosts."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationError("Image URL must be an http(s) URL")

    host = parsed.hostname
    if host.lower() == "localhost" or host.lower().endswith(".localhost"):
        raise ValidationError("Image URL must point at a public host")

    try:
        addresses = [str(ipaddress.ip_address(host))]
    except ValueError:
        addresses = await _resolve_host(host)

    if not addresses or not all(_is_public(a) for a in addresses):
        logger.warning(f"Refusing image download from non-public host {host}")
        raise ValidationError("Image URL must point at a public host")


async def _read_capped(resp: httpx.Response) -> bytes:
    declared = resp.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > MAX_IMAGE_BYTES:
        raise ValidationError(f"Image exceeds {MAX_IMAGE_BYTES // (1024 * 1024)}MB limit")

    chunks = []
    total = 0
    async for chunk in resp.aiter_bytes():
        total += len(chunk)
        if total > MAX_IMAGE_BYTES:
            raise ValidationError(f"Image exceeds {MAX_IMAGE_BYTES // (1024 * 1024)}MB limit")
        chunks.append(chunk)
    return b"".join(chunks)


async def download_image(url: str, transport: httpx.AsyncBaseTransport | None = None) -> ImageBlob:
    """
    Download an image from a public URL and sniff its type.

    Redirects are followed by hand so every hop is checked against the
    public-host rule; the body is streamed and cut off at MAX_IMAGE_BYTES.
    """
    try:
        async with httpx.AsyncClient(timeout=30, transport=transport) as client:
            for _ in range(MAX_REDIRECTS + 1):
                await check_public_url(url)
                async with client.stream("GET", url) as resp:
                    if resp.is_redirect and "location" in resp.headers:
                        url = urljoin(url, resp.headers["location"])
                        continue
                    if resp.status_code >= 500:
                        raise TransientError("Image download failed", status_code=resp.status_code)
                    if resp.status_code >= 400:
                        raise ValidationError("Image URL is not fetchable", status_code=resp.status_code)
                    data = await _read_capped(resp)
                    header_mime = resp.headers.get("content-type", "").split(";")[0].strip()
                    break
            else:
                raise ValidationError("Image URL redirected too many times")
    except httpx.HTTPError as e:
        logger.warning(f"Image download from {url[:80]} failed: {e}")
        raise TransientError("Image download failed", body=str(e)) from e

    mime = sniff_mime(data) or (header_mime if header_mime.startswith("image/") else DEFAULT_MIME)
    logger.info(f"Downloaded image ({len(data)} bytes, {mime}) from {url[:80]}")
    return ImageBlob(data=data, mime_type=mime)


async def load_image(value: str, transport: httpx.AsyncBaseTransport | None = None) -> ImageBlob:
    """Accept a data URL, raw base64, or an http(s) URL."""
    if isinstance(value, str) and value.strip().lower().startswith(("http://", "https://")):
        return await download_image(value.strip(), transport=transport)
    return parse_image(value)
