"""
services/backend.py

시험 백엔드 REST 클라이언트 (httpx 비동기).
Public API:
  - get_exam_details(exam_id)                       -> ExamDefinition
  - start_attempt(exam_id)                          -> StartedAttempt
  - submit_answer(attempt_id, question_id, answer)  -> None
  - get_saved_answers(attempt_id)                   -> List[SavedAnswer]
  - complete_attempt(attempt_id)                    -> dict (점수 요약)

오류 처리 원칙:
- 네트워크 오류, HTTP 오류, 응답 형식 오류는 모두 BackendError 계열로 변환
- 401은 SessionExpiredError, '이미 완료된 시험'은 ExamAlreadyCompletedError
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

import config
from exam_client.models.question_model import Answer, ExamDefinition, SavedAnswer, StartedAttempt
from exam_client.services.presentation import encode_answer

logger = logging.getLogger(__name__)

_ENVELOPE_KEYS = {"data", "success", "message", "status", "code"}


class BackendError(Exception):
    """시험 백엔드 호출 실패."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ExamAlreadyCompletedError(BackendError):
    """이 학생은 이미 이 시험을 완료했다."""


class SessionExpiredError(BackendError):
    """인증 토큰 만료 (HTTP 401)."""


def _unwrap(body: Any) -> Any:
    """{"success": ..., "data": {...}} 형태의 응답 봉투를 벗긴다 (중첩 포함)."""
    while isinstance(body, dict) and "data" in body and set(body) <= _ENVELOPE_KEYS:
        body = body["data"]
    return body


def _error_from_response(response: httpx.Response) -> BackendError:
    try:
        body = response.json()
    except ValueError:
        body = None

    message = ""
    code = None
    if isinstance(body, dict):
        message = str(body.get("message") or body.get("detail") or "")
        code = body.get("code")
    if not message:
        message = response.text or response.reason_phrase or f"HTTP {response.status_code}"

    if response.status_code == 401:
        return SessionExpiredError(message, response.status_code, code)
    if "already completed" in message.lower() or code == "TEST_ALREADY_COMPLETED":
        return ExamAlreadyCompletedError(message, response.status_code, code)
    return BackendError(message, response.status_code, code)


class ExamBackend:
    """
    시험 백엔드 클라이언트.

    Args:
        base_url:  API 기본 URL (기본값: config.API_BASE_URL)
        token:     Bearer 인증 토큰. 비어 있으면 Authorization 헤더를 보내지 않는다.
        timeout:   요청 제한 시간 (초)
        transport: 테스트용 httpx 전송 계층 (MockTransport 등)
    """

    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        token: str = "",
        timeout: float = config.API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} 네트워크 오류: {e}")
            raise BackendError(f"서버에 연결할 수 없습니다: {e}") from e

        if response.is_error:
            error = _error_from_response(response)
            logger.warning(f"{method} {path} 실패 - {response.status_code}: {error.message}")
            raise error

        if not response.content:
            return None
        try:
            return _unwrap(response.json())
        except ValueError as e:
            raise BackendError("서버 응답을 해석할 수 없습니다.", response.status_code) from e

    # ── 엔드포인트 ───────────────────────────────────────────────────────────

    async def get_exam_details(self, exam_id: int) -> ExamDefinition:
        data = await self._request("GET", f"/tests/{exam_id}/student-details")
        try:
            return ExamDefinition.model_validate(data)
        except ValidationError as e:
            logger.error(f"시험 {exam_id} 정의 검증 실패: {e}")
            raise BackendError("시험 정보 형식이 올바르지 않습니다.") from e

    async def start_attempt(self, exam_id: int) -> StartedAttempt:
        data = await self._request("POST", f"/tests/{exam_id}/start")
        try:
            return StartedAttempt.model_validate(data)
        except ValidationError as e:
            logger.error(f"시험 {exam_id} 시작 응답 검증 실패: {e}")
            raise BackendError("시험 시작 응답 형식이 올바르지 않습니다.") from e

    async def submit_answer(self, attempt_id: int, question_id: int, answer: Answer) -> None:
        await self._request(
            "POST",
            f"/tests/attempt/{attempt_id}/answer",
            json={"questionId": question_id, "answer": encode_answer(answer)},
        )

    async def get_saved_answers(self, attempt_id: int) -> List[SavedAnswer]:
        data = await self._request("GET", f"/tests/attempt/{attempt_id}/saved-answers")
        if isinstance(data, dict):
            data = data.get("saved_answers", [])
        if not isinstance(data, list):
            raise BackendError("저장된 답안 형식이 올바르지 않습니다.")

        saved: List[SavedAnswer] = []
        for idx, item in enumerate(data):
            try:
                saved.append(SavedAnswer.model_validate(item))
            except ValidationError as e:
                logger.warning(f"saved_answers[{idx}]: 항목 무시: {e}")
        return saved

    async def complete_attempt(self, attempt_id: int) -> Dict[str, Any]:
        data = await self._request("POST", f"/tests/attempt/{attempt_id}/complete")
        return data if isinstance(data, dict) else {}
