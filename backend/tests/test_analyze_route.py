"""
DGT Coach Backend: POST /api Endpoint Tests
=============================================

What:  End-to-end tests through the FastAPI app with a fake LLMService.
How:   HTTPX AsyncClient over ASGITransport; no server, no network.

What we test:
    ✅ Invalid bodies answer 400 and never reach the upstream service
    ✅ Bodies over the limit answer 413, with or without Content-Length
    ✅ Image mode: one upstream call with an inline image/jpeg part
    ✅ Well-formed replies round-trip; malformed replies degrade to 200 fallbacks
    ✅ Legacy tag contract never returns a partial record
    ✅ Upstream errors (429) and empty replies answer 500
    ✅ Unexpected errors answer 500 with the request ID and CORS headers
    ✅ 50 concurrent image requests get their own results
"""

import asyncio
import base64
import json
from unittest.mock import MagicMock, AsyncMock, patch

import pytest
from httpx import AsyncClient, ASGITransport
from google.api_core import exceptions as google_exceptions

from dgt_coach.config import settings
from dgt_coach.exceptions import EmptyUpstreamResponseError, UpstreamServiceError
from dgt_coach.services.normalizer import UNDETERMINED_ANSWER


class TestInvalidRequests:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"question": "¿Por qué?"},
            {"context": {"analysis": []}},
            {"image": ""},
            {"testTopics": []},
            {"somethingElse": 1},
        ],
    )
    async def test_no_mode_is_400_without_upstream_call(self, test_client, fake_llm, body):
        response = await test_client.post("/api", json=body)

        assert response.status_code == 400
        payload = response.json()
        assert payload["code"] == "invalid_request"
        assert payload["error"]
        assert fake_llm.calls == 0

    @pytest.mark.asyncio
    async def test_malformed_json_is_400(self, test_client, fake_llm):
        response = await test_client.post(
            "/api",
            content=b'{"image": ',
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_request"
        assert fake_llm.calls == 0

    @pytest.mark.asyncio
    async def test_wrong_field_type_is_400(self, test_client, fake_llm):
        response = await test_client.post("/api", json={"testTopics": "señales"})
        assert response.status_code == 400
        assert "testTopics" in response.json()["error"]
        assert fake_llm.calls == 0

    @pytest.mark.asyncio
    async def test_undecodable_image_is_400(self, test_client, fake_llm):
        response = await test_client.post("/api", json={"image": "not base64 at all!"})
        assert response.status_code == 400
        assert fake_llm.calls == 0

    @pytest.mark.asyncio
    async def test_oversized_body_is_413(self, fake_llm):
        from dgt_coach.main import create_app

        with patch.object(settings, "max_body_size", 1024):
            app = create_app(llm_service=fake_llm)
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.post("/api", json={"image": "A" * 4096})

        assert response.status_code == 413
        assert response.json()["code"] == "payload_too_large"
        assert fake_llm.calls == 0

    @pytest.mark.asyncio
    async def test_oversized_chunked_body_is_413(self, fake_llm):
        from dgt_coach.main import create_app

        async def chunks():
            for _ in range(8):
                yield b"A" * 1024

        with patch.object(settings, "max_body_size", 1024):
            app = create_app(llm_service=fake_llm)
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.post(
                    "/api",
                    content=chunks(),
                    headers={"Content-Type": "application/json", "X-Request-ID": "chunk123"},
                )

        assert response.status_code == 413
        payload = response.json()
        assert payload["code"] == "payload_too_large"
        assert payload["request_id"] == "chunk123"
        assert fake_llm.calls == 0

    @pytest.mark.asyncio
    async def test_chunked_body_within_limit_reaches_route(self, test_client, fake_llm, sample_image_b64):
        body = json.dumps({"image": sample_image_b64}).encode()

        async def chunks():
            for start in range(0, len(body), 7):
                yield body[start:start + 7]

        response = await test_client.post(
            "/api", content=chunks(), headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert fake_llm.calls == 1


class TestImageMode:

    @pytest.mark.asyncio
    async def test_one_upstream_call_with_inline_jpeg(
        self, test_client, fake_llm, sample_image_b64, sample_image_bytes, sample_analysis
    ):
        fake_llm.reply = json.dumps(sample_analysis, ensure_ascii=False)

        response = await test_client.post("/api", json={"image": sample_image_b64})

        assert response.status_code == 200
        assert fake_llm.calls == 1
        prompt = fake_llm.prompts[0]
        blobs = [p for p in prompt.parts if p.is_blob]
        assert len(blobs) == 1
        assert blobs[0].mime_type == "image/jpeg"
        assert blobs[0].data == sample_image_bytes
        assert prompt.json_output is True

    @pytest.mark.asyncio
    async def test_well_formed_reply_round_trips(self, test_client, fake_llm, sample_image_b64, sample_analysis):
        reply = sample_analysis + [dict(sample_analysis[0], correctAnswer="C", note=None)]
        fake_llm.reply = json.dumps(reply, ensure_ascii=False)

        response = await test_client.post("/api", json={"image": sample_image_b64})

        assert response.status_code == 200
        assert response.json() == {"analysis": reply}

    @pytest.mark.asyncio
    async def test_malformed_reply_is_200_fallback_with_raw_text(self, test_client, fake_llm, sample_image_b64):
        raw = '[{"knowledgePoint": "优先通行权", "correctAnswer": "B"'
        fake_llm.reply = raw

        response = await test_client.post("/api", json={"image": sample_image_b64})

        assert response.status_code == 200
        payload = response.json()
        assert payload["parseFailed"] is True
        assert payload["rawText"] == raw
        assert payload["analysis"][0]["correctAnswer"] == UNDETERMINED_ANSWER
        assert raw in payload["analysis"][0]["explanation"]

    @pytest.mark.asyncio
    async def test_image_takes_priority_over_topics(self, test_client, fake_llm, sample_image_b64):
        fake_llm.reply = "[]"
        response = await test_client.post(
            "/api", json={"image": sample_image_b64, "testTopics": ["超车"]}
        )
        assert response.json() == {"analysis": []}
        assert fake_llm.prompts[0].parts[-1].is_blob


class TestLegacyContract:

    @pytest.mark.asyncio
    async def test_tagged_reply_becomes_record(self, legacy_client, fake_llm, sample_image_b64):
        fake_llm.reply = (
            "[KNOWLEDGE]限速[/KNOWLEDGE][TRANSLATION]限速是多少？[/TRANSLATION]"
            "[ANSWER]A[/ANSWER][EXPLANATION]城市道路50。[/EXPLANATION]"
            "[RELATED]住宅区20。[/RELATED][KEYWORDS]velocidad: 速度[/KEYWORDS]"
        )

        response = await legacy_client.post("/api", json={"image": sample_image_b64})

        assert response.status_code == 200
        payload = response.json()
        assert payload["analysis"][0]["correctAnswer"] == "A"
        assert fake_llm.prompts[0].json_output is False

    @pytest.mark.asyncio
    async def test_missing_markers_give_documented_fallback(self, legacy_client, fake_llm, sample_image_b64):
        raw = "La respuesta correcta es la A."
        fake_llm.reply = raw

        response = await legacy_client.post("/api", json={"image": sample_image_b64})

        assert response.status_code == 200
        payload = response.json()
        assert payload["parseFailed"] is True
        assert payload["rawText"] == raw
        assert len(payload["analysis"]) == 1
        assert payload["analysis"][0]["correctAnswer"] == UNDETERMINED_ANSWER


class TestOtherModes:

    @pytest.mark.asyncio
    async def test_follow_up_returns_answer(self, test_client, fake_llm, sample_analysis):
        fake_llm.reply = "在环岛内，已经在环岛中的车辆优先通行。"
        context = {"analysis": sample_analysis}

        response = await test_client.post(
            "/api", json={"context": context, "question": "如果是在环岛呢？"}
        )

        assert response.status_code == 200
        assert response.json() == {"answer": "在环岛内，已经在环岛中的车辆优先通行。"}
        prompt = fake_llm.prompts[0]
        assert prompt.json_output is False
        assert [p.is_blob for p in prompt.parts] == [False, False]
        assert "如果是在环岛呢？" in prompt.parts[1].text

    @pytest.mark.asyncio
    async def test_test_generation_returns_questions(self, test_client, fake_llm):
        questions = [
            {
                "question_es": "¿Quién tiene prioridad?",
                "question_zh": "谁有优先权？",
                "options": ["A. ...", "B. ...", "C. ..."],
                "correct_answer": "A",
                "explanation": "...",
            }
        ] * 3
        fake_llm.reply = json.dumps(questions, ensure_ascii=False)

        response = await test_client.post("/api", json={"testTopics": ["优先通行权", "超车"]})

        assert response.status_code == 200
        assert response.json() == {"testQuestions": questions}
        assert fake_llm.prompts[0].parts[0].text.endswith("优先通行权, 超车")


class TestUpstreamFailures:

    @pytest.mark.asyncio
    async def test_upstream_429_is_500_with_status_in_message(self, test_client, fake_llm, sample_image_b64):
        fake_llm.error = UpstreamServiceError(upstream_status=429, upstream_body="Resource has been exhausted")

        response = await test_client.post("/api", json={"image": sample_image_b64})

        assert response.status_code == 500
        payload = response.json()
        assert payload["code"] == "upstream_error"
        assert "429" in payload["error"]

    @pytest.mark.asyncio
    async def test_gemini_429_through_real_service(self, sample_image_b64):
        from dgt_coach.main import create_app
        from dgt_coach.services.gemini_service import GeminiService

        with patch("dgt_coach.services.gemini_service.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(
                side_effect=google_exceptions.TooManyRequests("Quota exceeded for model")
            )
            mock_genai.GenerativeModel.return_value = mock_model

            app = create_app(llm_service=GeminiService(api_key="k"))
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.post("/api", json={"image": sample_image_b64})

        assert response.status_code == 500
        assert "429" in response.json()["error"]
        assert mock_model.generate_content_async.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_reply_is_500(self, test_client, fake_llm):
        fake_llm.error = EmptyUpstreamResponseError()

        response = await test_client.post("/api", json={"testTopics": ["超车"]})

        assert response.status_code == 500
        assert response.json()["code"] == "empty_upstream_response"

    @pytest.mark.asyncio
    async def test_error_body_carries_request_id(self, test_client, fake_llm):
        fake_llm.error = EmptyUpstreamResponseError()

        response = await test_client.post(
            "/api", json={"testTopics": ["超车"]}, headers={"X-Request-ID": "abc12345"}
        )

        assert response.headers["X-Request-ID"] == "abc12345"
        assert response.json()["request_id"] == "abc12345"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500_with_request_id_and_cors(self, fake_llm):
        from dgt_coach.main import create_app

        fake_llm.error = RuntimeError("connection pool exhausted")
        app = create_app(llm_service=fake_llm)
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/api",
                json={"testTopics": ["超车"]},
                headers={"X-Request-ID": "rid12345", "Origin": "http://localhost:3000"},
            )

        assert response.status_code == 500
        payload = response.json()
        assert payload["code"] == "internal_error"
        assert payload["request_id"] == "rid12345"
        assert "connection pool exhausted" in payload["error"]
        assert response.headers["X-Request-ID"] == "rid12345"
        assert response.headers["Access-Control-Allow-Origin"] == "*"


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_fifty_concurrent_image_requests_are_independent(self, test_client, fake_llm):
        async def echo_image(prompt):
            label = prompt.parts[-1].data.decode()
            # Finish out of order so responses interleave
            await asyncio.sleep(0.001 * (hash(label) % 7))
            return json.dumps([{"knowledgePoint": label, "correctAnswer": "A"}])

        fake_llm.reply_fn = echo_image

        async def send(i):
            image = base64.b64encode(f"photo-{i}".encode()).decode()
            return i, await test_client.post("/api", json={"image": image})

        results = await asyncio.gather(*(send(i) for i in range(50)))

        assert fake_llm.calls == 50
        request_ids = set()
        for i, response in results:
            assert response.status_code == 200
            assert response.json() == {
                "analysis": [{"knowledgePoint": f"photo-{i}", "correctAnswer": "A"}]
            }
            request_ids.add(response.headers["X-Request-ID"])
        assert len(request_ids) == 50


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_reports_configuration(self, test_client, fake_llm):
        response = await test_client.get("/health")

        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "healthy"
        assert payload["model"] == "fake-model"
        assert payload["response_contract"] == "json"
        assert payload["api_key_configured"] is True

    @pytest.mark.asyncio
    async def test_health_degraded_without_key(self, test_client, fake_llm):
        fake_llm.configured = False
        response = await test_client.get("/health")
        assert response.json()["status"] == "degraded"
