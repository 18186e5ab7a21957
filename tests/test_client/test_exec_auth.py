"""Tests for the httpx auth flow backed by an exec token provider."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from execred.auth.exec_provider import ExecTokenProvider
from execred.client import ExecAuth
from execred.exceptions import ExecutionError, ExecutionFailure
from execred.models import ExecConfig

BASE_URL = "https://k8s.example.com"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _provider(invoker) -> ExecTokenProvider:
    config = ExecConfig(apiVersion="client.authentication.k8s.io/v1beta1", command="plugin")
    return ExecTokenProvider(config, invoker=invoker)


class _Server:
    """MockTransport handler that accepts only the tokens in ``valid``."""

    def __init__(self, *valid: str) -> None:
        self.valid = set(valid)
        self.seen: list[str | None] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        header = request.headers.get("Authorization")
        self.seen.append(header)
        if header and header.removeprefix("Bearer ") in self.valid:
            return httpx.Response(200, json={"kind": "NamespaceList"})
        return httpx.Response(401, json={"message": "Unauthorized"})


# ---------------------------------------------------------------------------
# Sync flow
# ---------------------------------------------------------------------------


class TestSyncFlow:
    def test_bearer_header_attached(self, fake_invoker, payload) -> None:
        server = _Server("one")
        auth = ExecAuth(_provider(fake_invoker(payload(token="one"))))
        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(server), auth=auth) as client:
            response = client.get("/api/v1/namespaces")
        assert response.status_code == 200
        assert server.seen == ["Bearer one"]

    def test_cached_token_reused_across_requests(self, fake_invoker, payload) -> None:
        invoker = fake_invoker(payload(token="one"))
        server = _Server("one")
        auth = ExecAuth(_provider(invoker))
        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(server), auth=auth) as client:
            client.get("/a")
            client.get("/b")
        assert len(invoker.calls) == 1
        assert server.seen == ["Bearer one", "Bearer one"]

    def test_unauthorized_refreshes_and_retries_once(self, fake_invoker, payload) -> None:
        invoker = fake_invoker(payload(token="revoked"), payload(token="fresh"))
        server = _Server("fresh")
        auth = ExecAuth(_provider(invoker))
        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(server), auth=auth) as client:
            response = client.get("/api")
        assert response.status_code == 200
        assert server.seen == ["Bearer revoked", "Bearer fresh"]
        assert len(invoker.calls) == 2

    def test_second_unauthorized_is_returned(self, fake_invoker, payload) -> None:
        server = _Server()
        auth = ExecAuth(_provider(fake_invoker(payload(token="nope"))))
        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(server), auth=auth) as client:
            response = client.get("/api")
        assert response.status_code == 401
        assert len(server.seen) == 2

    def test_retry_can_be_disabled(self, fake_invoker, payload) -> None:
        invoker = fake_invoker(payload(token="revoked"), payload(token="fresh"))
        server = _Server("fresh")
        auth = ExecAuth(_provider(invoker), refresh_on_unauthorized=False)
        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(server), auth=auth) as client:
            response = client.get("/api")
        assert response.status_code == 401
        assert len(invoker.calls) == 1

    def test_certificate_only_sends_no_header(self, fake_invoker, payload) -> None:
        raw = payload(token=None, clientCertificateData="C", clientKeyData="K")
        server = _Server()
        auth = ExecAuth(_provider(fake_invoker(raw)), refresh_on_unauthorized=False)
        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(server), auth=auth) as client:
            client.get("/api")
        assert server.seen == [None]

    def test_plugin_failure_propagates(self, fake_invoker) -> None:
        err = ExecutionError("external exec failed", reason=ExecutionFailure.START)
        auth = ExecAuth(_provider(fake_invoker(err)))
        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(_Server()), auth=auth) as client:
            with pytest.raises(ExecutionError):
                client.get("/api")


# ---------------------------------------------------------------------------
# Async flow
# ---------------------------------------------------------------------------


class TestAsyncFlow:
    def test_bearer_header_attached(self, fake_invoker, payload) -> None:
        server = _Server("one")
        auth = ExecAuth(_provider(fake_invoker(payload(token="one"))))

        async def _run() -> int:
            async with httpx.AsyncClient(
                base_url=BASE_URL, transport=httpx.MockTransport(server), auth=auth
            ) as client:
                response = await client.get("/api")
            return response.status_code

        assert asyncio.run(_run()) == 200
        assert server.seen == ["Bearer one"]

    def test_unauthorized_refreshes_and_retries_once(self, fake_invoker, payload) -> None:
        invoker = fake_invoker(payload(token="revoked"), payload(token="fresh"))
        server = _Server("fresh")
        auth = ExecAuth(_provider(invoker))

        async def _run() -> int:
            async with httpx.AsyncClient(
                base_url=BASE_URL, transport=httpx.MockTransport(server), auth=auth
            ) as client:
                response = await client.get("/api")
            return response.status_code

        assert asyncio.run(_run()) == 200
        assert server.seen == ["Bearer revoked", "Bearer fresh"]
        assert len(invoker.calls) == 2
