"""Unit tests for the non-streaming paper API client and user ids."""

import json
import re

import httpx
import pytest

from kognys.api.client import (
    PaperApi,
    extract_error_message,
    generate_user_id,
    get_user_id,
)
from kognys.errors import PaperApiError
from kognys.settings import settings


def make_api(handler) -> PaperApi:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PaperApi("http://kognys.test/", client=client)


class TestUserId:
    def test_generated_shape(self):
        assert re.fullmatch(r"user_\d{13}_[a-z0-9]{9}", generate_user_id())

    def test_configured_id_wins(self):
        assert get_user_id() == "test-user"

    def test_generated_id_is_cached(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings.api, "user_id", None)

        first = get_user_id()
        second = get_user_id()

        assert first == second
        assert (tmp_path / "user_id").read_text() == first


class TestExtractErrorMessage:
    def test_validation_detail_list(self):
        payload = {"detail": [{"msg": "field required", "loc": ["body", "message"]}]}
        assert extract_error_message(422, payload) == "field required"
        assert extract_error_message(400, payload) == "field required"

    @pytest.mark.parametrize(
        "payload, expected",
        [
            ({"detail": "Question too short"}, "Question too short"),
            ({"message": "Bad message"}, "Bad message"),
            ({"error": "Bad error"}, "Bad error"),
            ({}, "HTTP error! status: 400"),
        ],
    )
    def test_bad_request_fallbacks(self, payload, expected):
        assert extract_error_message(400, payload) == expected

    def test_other_status_ignores_plain_detail(self):
        assert extract_error_message(500, {"detail": "boom"}) == "HTTP error! status: 500"

    def test_non_object_payload(self):
        assert extract_error_message(502, ["oops"]) == "HTTP error! status: 502"


class TestPaperApi:
    @pytest.mark.asyncio
    async def test_create_paper(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"paper_id": "p1", "paper_content": "# Paper"})

        response = await make_api(handler).create_paper("What is a qubit?")

        assert response.paper_id == "p1"
        assert response.paper_content == "# Paper"
        assert seen[0].method == "POST"
        assert str(seen[0].url) == "http://kognys.test/papers"
        assert json.loads(seen[0].content) == {"message": "What is a qubit?", "user_id": "test-user"}

    @pytest.mark.asyncio
    async def test_get_paper(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/papers/p1"
            return httpx.Response(200, json={"paper_id": "p1", "paper_content": "Body"})

        response = await make_api(handler).get_paper("p1")
        assert response.paper_content == "Body"

    @pytest.mark.asyncio
    async def test_error_status(self):
        api = make_api(lambda request: httpx.Response(400, json={"detail": "Question too short"}))

        with pytest.raises(PaperApiError) as exc_info:
            await api.create_paper("?", user_id="u1")

        assert str(exc_info.value) == "Question too short"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_error_without_json_body(self):
        api = make_api(lambda request: httpx.Response(404, text="not found"))

        with pytest.raises(PaperApiError, match="HTTP error! status: 404"):
            await api.get_paper("missing")

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        with pytest.raises(PaperApiError, match="Failed to reach paper API"):
            await make_api(handler).get_paper("p1")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
