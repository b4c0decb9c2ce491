"""Tests for the provider client and response normalization."""

from __future__ import annotations

import json

import httpx
import pytest

from domain_sync.core.errors import UpstreamError
from domain_sync.data_pipeline.fetcher import DomainInfoFetcher
from domain_sync.data_pipeline.normalizer import parse_snapshot, unwrap_domain_info


def _fetcher(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    defaults = {"url": "https://provider.example/domain-info", "api_key": "KEY", "backoff": 0, "max_retries": 2}
    defaults.update(kwargs)
    return DomainInfoFetcher(client=client, **defaults)


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class TestNormalizer:
    def test_envelope_variants(self, make_payload):
        full = make_payload()
        info = full["body"]["domainInfo"]
        assert unwrap_domain_info(full) == info
        assert unwrap_domain_info({"domainInfo": info}) == info
        assert unwrap_domain_info(info) == info

    @pytest.mark.parametrize("payload", [None, [], "text", {"body": "x"}, {"body": {"domainInfo": {}}}])
    def test_bad_envelopes(self, payload):
        with pytest.raises(UpstreamError):
            unwrap_domain_info(payload)

    def test_snapshot_fields(self, make_payload):
        snapshot = parse_snapshot("example.com", make_payload(status="ok", ip_addresses=None))

        assert snapshot.registrar.name == "OldCo"
        assert snapshot.dns_records("NS") == ["ns1.x", "ns2.x"]
        assert snapshot.dns_records("MX") == ["mx1.example.com"]
        assert snapshot.status == ["ok"]
        assert snapshot.ips("ipv4") == []
        assert snapshot.ssl.issuer == "Let's Encrypt"

    def test_domain_is_filled_in(self, make_payload):
        payload = make_payload()
        del payload["body"]["domainInfo"]["domain"]
        assert parse_snapshot("fallback.com", payload).domain == "fallback.com"

    @pytest.mark.parametrize("override", [
        {"registrar": "OldCo"},
        {"dns": {"nameServers": {"a": 1}}},
        {"whois": ["x"]},
    ])
    def test_malformed_sections(self, make_payload, override):
        with pytest.raises(UpstreamError):
            parse_snapshot("example.com", make_payload(**override))


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fetch_posts_domain_with_basic_auth(make_payload):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=make_payload())

    fetcher = _fetcher(handler)
    snapshot = await fetcher.fetch("example.com")
    await fetcher.close()

    assert snapshot.domain == "example.com"
    req = seen[0]
    assert req.method == "POST"
    assert req.headers["Authorization"] == "Basic KEY"
    assert json.loads(req.content) == {"domain": "example.com"}


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, json={"error": "not found"})

    with pytest.raises(UpstreamError, match="HTTP 404"):
        await _fetcher(handler).fetch("example.com")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_server_error_is_retried(make_payload):
    responses = [httpx.Response(503), httpx.Response(200, json=make_payload())]

    def handler(request):
        return responses.pop(0)

    snapshot = await _fetcher(handler).fetch("example.com")
    assert snapshot.registrar.name == "OldCo"
    assert responses == []


@pytest.mark.asyncio
async def test_persistent_server_error_fails():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502)

    with pytest.raises(UpstreamError, match="HTTP 502"):
        await _fetcher(handler, max_retries=1).fetch("example.com")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_timeout_fails_after_retries():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamError, match="timed out"):
        await _fetcher(handler, max_retries=2).fetch("example.com")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_invalid_json_body():
    def handler(request):
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(UpstreamError, match="invalid JSON"):
        await _fetcher(handler).fetch("example.com")


@pytest.mark.asyncio
async def test_unconfigured_provider():
    with pytest.raises(UpstreamError, match="not configured"):
        await DomainInfoFetcher(url="", api_key="").fetch("example.com")
