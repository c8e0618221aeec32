"""Tests for off-chain token metadata resolution."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from pumpwatch.parsers.token_metadata import (
    MetadataFetcher,
    TokenMetadataInfo,
    parse_metadata,
    transform_uri,
)

GATEWAY = "https://gw.test/ipfs/"


class TestTransformUri:
    @pytest.mark.parametrize(
        "uri,expected",
        [
            ("ipfs://QmAbc", GATEWAY + "QmAbc"),
            ("ipfs://ipfs/QmAbc", GATEWAY + "QmAbc"),
            ("QmAbc", GATEWAY + "QmAbc"),
            ("bafybeigdyr", GATEWAY + "bafybeigdyr"),
            ("https://cf-ipfs.com/ipfs/QmAbc", "https://cf-ipfs.com/ipfs/QmAbc"),
            ("https://arweave.net/xyz", "https://arweave.net/xyz"),
            ('{"image": "ipfs://QmImg"}', GATEWAY + "QmImg"),
            ("{not json}", None),
            ("ftp://host/file", None),
            ("", None),
            (None, None),
        ],
    )
    def test_cases(self, uri, expected) -> None:
        assert transform_uri(uri, GATEWAY) == expected


class TestParseMetadata:
    def test_top_level_socials(self) -> None:
        info = parse_metadata(
            {
                "name": "Doge Moon",
                "symbol": "DMOON",
                "description": "  to the moon ",
                "image": "ipfs://QmImg",
                "twitter": "https://x.com/dmoon",
                "website": "",
            },
            GATEWAY,
        )
        assert info.name == "Doge Moon"
        assert info.description == "to the moon"
        assert info.image_url == GATEWAY + "QmImg"
        assert info.twitter == "https://x.com/dmoon"
        assert info.website is None

    def test_extension_socials(self) -> None:
        info = parse_metadata(
            {"extensions": {"telegram": "https://t.me/x", "website": "https://x.io"}},
            GATEWAY,
        )
        assert info.telegram == "https://t.me/x"
        assert info.website == "https://x.io"
        assert info.image_url is None

    def test_non_string_fields_ignored(self) -> None:
        info = parse_metadata({"name": 123, "extensions": "bad"}, GATEWAY)
        assert info == TokenMetadataInfo()


class TestMetadataFetcher:
    def _fetcher(self, response=None, error=None) -> MetadataFetcher:
        fetcher = MetadataFetcher(gateway=GATEWAY)
        fetcher._client = AsyncMock()
        if error is not None:
            fetcher._client.get = AsyncMock(side_effect=error)
        else:
            fetcher._client.get = AsyncMock(return_value=response)
        return fetcher

    @pytest.mark.asyncio
    async def test_fetch_ipfs(self) -> None:
        resp = MagicMock()
        resp.status_code = 200
        resp.json.return_value = {"image": "QmImg", "twitter": "https://x.com/a"}
        fetcher = self._fetcher(resp)

        info = await fetcher.fetch("ipfs://QmMeta")

        fetcher._client.get.assert_awaited_once_with(GATEWAY + "QmMeta")
        assert info.image_url == GATEWAY + "QmImg"
        assert info.twitter == "https://x.com/a"

    @pytest.mark.asyncio
    async def test_inline_json_needs_no_request(self) -> None:
        fetcher = self._fetcher()
        info = await fetcher.fetch(json.dumps({"image": "https://img.test/a.png"}))
        assert info.image_url == "https://img.test/a.png"
        fetcher._client.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        resp = MagicMock()
        resp.status_code = 404
        assert await self._fetcher(resp).fetch("https://meta.test/x.json") is None

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        fetcher = self._fetcher(error=httpx.ConnectTimeout("timeout"))
        assert await fetcher.fetch("https://meta.test/x.json") is None

    @pytest.mark.asyncio
    async def test_bad_json(self) -> None:
        resp = MagicMock()
        resp.status_code = 200
        resp.json.side_effect = json.JSONDecodeError("bad", "", 0)
        assert await self._fetcher(resp).fetch("https://meta.test/x.json") is None

    @pytest.mark.asyncio
    async def test_non_object_body(self) -> None:
        resp = MagicMock()
        resp.status_code = 200
        resp.json.return_value = ["not", "a", "dict"]
        assert await self._fetcher(resp).fetch("https://meta.test/x.json") is None

    @pytest.mark.asyncio
    async def test_empty_or_unsupported_uri(self) -> None:
        fetcher = self._fetcher()
        assert await fetcher.fetch(None) is None
        assert await fetcher.fetch("   ") is None
        assert await fetcher.fetch("ftp://x") is None
        fetcher._client.get.assert_not_awaited()
