"""Off-chain token metadata (IPFS / HTTP JSON) — image and social links.

Best-effort enrichment for creation events: any failure returns None and
the token simply keeps its metadata fields empty.
"""

import json
from dataclasses import dataclass

import httpx
from loguru import logger

DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs/"
_TIMEOUT = 5.0


@dataclass(frozen=True)
class TokenMetadataInfo:
    name: str | None = None
    symbol: str | None = None
    description: str | None = None
    image_url: str | None = None
    website: str | None = None
    twitter: str | None = None
    telegram: str | None = None


def _clean(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def transform_uri(uri: str | None, gateway: str = DEFAULT_IPFS_GATEWAY) -> str | None:
    """Normalise a metadata/image URI to a fetchable HTTP URL.

    Handles ``ipfs://`` URIs, bare CIDs (v0 ``Qm…`` and v1 ``bafy…``),
    gateway URLs, and inline JSON metadata (resolves its ``image``).
    """
    uri = _clean(uri)
    if uri is None:
        return None

    if uri.startswith("ipfs://"):
        return gateway + uri.removeprefix("ipfs://").removeprefix("ipfs/")
    if uri.startswith(("Qm", "bafy")):
        return gateway + uri
    if "/ipfs/" in uri:
        return uri
    if uri.startswith("{") and uri.endswith("}"):
        try:
            data = json.loads(uri)
        except json.JSONDecodeError:
            logger.debug("[METADATA] Inline JSON metadata unparseable")
            return None
        if isinstance(data, dict):
            return transform_uri(data.get("image"), gateway)
        return None
    if uri.startswith(("http://", "https://")):
        return uri
    return None


def parse_metadata(data: dict, gateway: str = DEFAULT_IPFS_GATEWAY) -> TokenMetadataInfo:
    """Map a metadata JSON document to TokenMetadataInfo.

    Socials appear either top-level or under ``extensions`` depending on the
    launchpad that wrote the file.
    """
    extensions = data.get("extensions")
    if not isinstance(extensions, dict):
        extensions = {}

    def social(key: str) -> str | None:
        return _clean(data.get(key)) or _clean(extensions.get(key))

    return TokenMetadataInfo(
        name=_clean(data.get("name")),
        symbol=_clean(data.get("symbol")),
        description=_clean(data.get("description")),
        image_url=transform_uri(data.get("image"), gateway),
        website=social("website"),
        twitter=social("twitter"),
        telegram=social("telegram"),
    )


class MetadataFetcher:
    """Async fetcher for token metadata URIs."""

    def __init__(
        self,
        *,
        timeout: float = _TIMEOUT,
        gateway: str = DEFAULT_IPFS_GATEWAY,
    ) -> None:
        self._gateway = gateway
        self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch(self, uri: str | None) -> TokenMetadataInfo | None:
        raw = _clean(uri)
        if raw is None:
            return None

        if raw.startswith("{"):
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                return None
            return parse_metadata(data, self._gateway) if isinstance(data, dict) else None

        url = transform_uri(raw, self._gateway)
        if url is None:
            logger.debug(f"[METADATA] Unsupported URI: {raw[:60]}")
            return None

        try:
            resp = await self._client.get(url)
            if resp.status_code != 200:
                logger.debug(f"[METADATA] HTTP {resp.status_code} for {url[:60]}")
                return None
            data = resp.json()
        except (httpx.HTTPError, json.JSONDecodeError, ValueError) as e:
            logger.debug(f"[METADATA] {type(e).__name__} for {url[:60]}: {e}")
            return None

        if not isinstance(data, dict):
            return None
        return parse_metadata(data, self._gateway)
