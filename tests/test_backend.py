import json

import httpx
import pytest

from conftest import exam_payload, run

from exam_client.services.backend import (
    BackendError,
    ExamAlreadyCompletedError,
    ExamBackend,
    SessionExpiredError,
)


def _backend(handler, token: str = "tok") -> ExamBackend:
    return ExamBackend(base_url="http://backend/api", token=token, transport=httpx.MockTransport(handler))


async def _call(backend: ExamBackend, method: str, *args):
    try:
        return await getattr(backend, method)(*args)
    finally:
        await backend.aclose()


def test_exam_details_unwraps_envelope_and_sends_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"success": True, "data": exam_payload(n=2)})

    exam = run(_call(_backend(handler), "get_exam_details", 7))
    assert seen == {"path": "/api/tests/7/student-details", "auth": "Bearer tok"}
    assert exam.id == 7
    assert [q.question_text for q in exam.questions] == ["Question 0", "Question 1"]


def test_no_authorization_header_without_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=exam_payload(n=1))

    run(_call(_backend(handler, token=""), "get_exam_details", 7))
    assert seen["auth"] is None


def test_start_attempt_parses_snapshot():
    def handler(request):
        assert request.method == "POST"
        assert request.url.path == "/api/tests/7/start"
        return httpx.Response(200, json={"data": {"attempt_id": 41, "test": exam_payload(time_limit=45)}})

    started = run(_call(_backend(handler), "start_attempt", 7))
    assert started.attempt_id == 41
    assert started.exam.time_limit_seconds == 2700


def test_already_completed_error():
    def handler(request):
        return httpx.Response(400, json={"success": False, "message": "You have already completed this test"})

    with pytest.raises(ExamAlreadyCompletedError) as exc:
        run(_call(_backend(handler), "start_attempt", 7))
    assert exc.value.status_code == 400


def test_unauthorized_raises_session_expired():
    def handler(request):
        return httpx.Response(401, json={"code": "SESSION_EXPIRED", "message": "Session expired"})

    with pytest.raises(SessionExpiredError) as exc:
        run(_call(_backend(handler), "complete_attempt", 5))
    assert exc.value.code == "SESSION_EXPIRED"


def test_other_http_errors_carry_message():
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(BackendError) as exc:
        run(_call(_backend(handler), "complete_attempt", 5))
    assert exc.value.message == "boom"
    assert exc.value.status_code == 500


def test_network_error_becomes_backend_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(BackendError):
        run(_call(_backend(handler), "get_exam_details", 7))


def test_invalid_definition_becomes_backend_error():
    def handler(request):
        return httpx.Response(200, json={"questions": [{"id": 1, "text": "?", "type": "HOTSPOT"}]})

    with pytest.raises(BackendError):
        run(_call(_backend(handler), "get_exam_details", 7))


def test_submit_answer_serializes_mapping():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True})

    run(_call(_backend(handler), "submit_answer", 12, 3, {"Item1": "B"}))
    assert captured["path"] == "/api/tests/attempt/12/answer"
    assert captured["body"] == {"questionId": 3, "answer": '{"Item1": "B"}'}


def test_saved_answers_nested_envelope():
    def handler(request):
        assert request.url.path == "/api/tests/attempt/12/saved-answers"
        return httpx.Response(200, json={"data": {"data": {"saved_answers": [
            {"question_id": 1, "answer_text": "a"},
            {"questionId": 2, "answer_text": None},
            {"answer_text": "missing id"},
        ]}}})

    saved = run(_call(_backend(handler), "get_saved_answers", 12))
    assert [(s.question_id, s.answer_text) for s in saved] == [(1, "a"), (2, None)]


def test_complete_attempt_returns_payload():
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {"score": 7, "total_marks": 10}})

    assert run(_call(_backend(handler), "complete_attempt", 12)) == {"score": 7, "total_marks": 10}
