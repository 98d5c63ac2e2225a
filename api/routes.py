"""
api/routes.py — FastAPI 엔드포인트

브라우저 화면은 이 엔드포인트로 응시 컨트롤러를 조작한다.
거부된 조작(이동 제한, 저장 실패 등)은 HTTP 오류가 아니라 ok=False + notices로 돌려준다.
"""

from typing import Dict, Literal, Optional, Union

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

import api.session as session
from exam_client.models.question_model import QuestionType
from exam_client.models.session_state import Phase
from exam_client.services.backend import ExamBackend
from exam_client.services.exam_service import (
    answered_count,
    format_time,
    progress_percentage,
    question_palette,
)
from exam_client.services.presentation import blank_count, match_items
from exam_client.services.session_controller import ExamSessionController

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class TokenBody(BaseModel):
    token: str

class AnswerBody(BaseModel):
    question_id: int
    answer: Union[str, Dict[str, str]]

class NavigateBody(BaseModel):
    action: Literal["next", "previous", "goto"]
    index: int = 0

class ReviewBody(BaseModel):
    index: Optional[int] = None

class LeaveBody(BaseModel):
    confirm: bool = False


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _sid(request: Request) -> str:
    return request.state.session_id


def _backend(request: Request) -> ExamBackend:
    sid = _sid(request)
    backend = session.get(sid, "backend")
    if backend is None:
        backend = request.app.state.backend_factory(session.get(sid, "token", ""))
        session.put(sid, "backend", backend)
    return backend


def _controller(request: Request, exam_id: int) -> ExamSessionController:
    controller = session.get_controller(_sid(request), exam_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return controller


def _question_to_dict(controller: ExamSessionController, index: int) -> dict:
    state = controller.state
    q = state.presentation_order[index]
    d = {
        "id": q.id,
        "question_text": q.question_text,
        "type": q.type.value,
        "marks": q.marks,
        "index": index,
        "number": index + 1,
        "total": state.total_questions,
        "saved_answer": state.answers.get(q.id),
        "marked_for_review": index in state.marked_for_review,
        "options": [o.model_dump() for o in state.presentation_options.get(q.id, [])],
    }
    if q.type == QuestionType.MATCH:
        d["match"] = match_items(q).model_dump()
    elif q.type == QuestionType.FILL_IN_THE_BLANK:
        d["blanks"] = blank_count(q)
    return d


def _state_to_dict(controller: ExamSessionController) -> dict:
    state = controller.state
    exam = controller.exam
    redirect = controller.redirect
    d = {
        "exam_id": controller.exam_id,
        "phase": state.phase.value,
        "attempt_id": state.attempt_id,
        "load_error": controller.load_error,
        "title": exam.title if exam else None,
        "description": exam.description if exam else None,
        "time_limit_minutes": exam.time_limit_minutes if exam else None,
        "total_marks": exam.total_marks if exam else None,
        "settings": exam.settings.model_dump(mode="json") if exam else None,
        "current_question_index": state.current_question_index,
        "total": state.total_questions,
        "answered_count": answered_count(state),
        "time_left_seconds": state.time_left_seconds,
        "time_left": format_time(state.time_left_seconds),
        "progress": progress_percentage(state.current_question_index, state.total_questions),
        "palette": question_palette(state, controller.allow_previous_navigation),
        "is_submitting": state.is_submitting,
        "unsaved_question_ids": sorted(state.unsaved_question_ids),
        "leave_guard": controller.before_unload(),
        "result": state.result.model_dump(mode="json") if state.result else None,
        "redirect": redirect.model_dump(mode="json") if redirect else None,
        "notices": [n.model_dump() for n in controller.drain_notices()],
    }
    if state.phase == Phase.SUMMARY:
        d["summary"] = controller.summary().model_dump()
    return d


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.post("/api/set-token")
async def set_token(body: TokenBody, request: Request):
    token = body.token.strip()
    if not token:
        raise HTTPException(status_code=400, detail="토큰이 비어 있습니다.")
    sid = _sid(request)
    old = session.reset(sid)
    if old is not None:
        await session.dispose(old)
    session.put(sid, "token", token)
    return {"ok": True}


@router.post("/api/tests/{exam_id}/open")
async def open_exam(exam_id: int, request: Request):
    sid = _sid(request)
    existing = session.get_controller(sid, exam_id)
    if existing is not None and not existing.closed and existing.exam is not None:
        # 진행 상태는 유지하되, 그 사이 완료된 응시가 있는지 백엔드에서 다시 확인
        await existing.refresh()
        return _state_to_dict(existing)

    controller = ExamSessionController(exam_id, _backend(request))
    previous = session.put_controller(sid, exam_id, controller)
    if previous is not None:
        previous.close()
    await controller.load()
    return _state_to_dict(controller)


@router.post("/api/tests/{exam_id}/start")
async def start_exam(exam_id: int, request: Request):
    controller = _controller(request, exam_id)
    ok = await controller.start()
    return {"ok": ok, **_state_to_dict(controller)}


@router.get("/api/tests/{exam_id}/state")
async def get_state(exam_id: int, request: Request):
    return _state_to_dict(_controller(request, exam_id))


@router.get("/api/tests/{exam_id}/question")
async def get_question(exam_id: int, request: Request, index: Optional[int] = None):
    controller = _controller(request, exam_id)
    state = controller.state
    idx = state.current_question_index if index is None else index
    if not (0 <= idx < state.total_questions):
        raise HTTPException(status_code=404, detail="문제를 찾을 수 없습니다.")
    return _question_to_dict(controller, idx)


@router.post("/api/tests/{exam_id}/answer")
async def save_answer(exam_id: int, body: AnswerBody, request: Request):
    controller = _controller(request, exam_id)
    ok = controller.set_answer(body.question_id, body.answer)
    return {"ok": ok, **_state_to_dict(controller)}


@router.post("/api/tests/{exam_id}/navigate")
async def navigate(exam_id: int, body: NavigateBody, request: Request):
    controller = _controller(request, exam_id)
    if body.action == "next":
        ok = controller.next()
    elif body.action == "previous":
        ok = controller.previous()
    else:
        ok = controller.go_to(body.index)
    return {"ok": ok, **_state_to_dict(controller)}


@router.post("/api/tests/{exam_id}/review")
async def toggle_review(exam_id: int, body: ReviewBody, request: Request):
    controller = _controller(request, exam_id)
    marked = controller.toggle_review(body.index)
    return {"marked": marked, **_state_to_dict(controller)}


@router.post("/api/tests/{exam_id}/summary")
async def request_summary(exam_id: int, request: Request):
    controller = _controller(request, exam_id)
    summary = controller.request_submit()
    return {"ok": summary is not None, **_state_to_dict(controller)}


@router.post("/api/tests/{exam_id}/summary/cancel")
async def cancel_summary(exam_id: int, request: Request):
    controller = _controller(request, exam_id)
    ok = controller.cancel_submit()
    return {"ok": ok, **_state_to_dict(controller)}


@router.post("/api/tests/{exam_id}/submit")
async def submit_exam(exam_id: int, request: Request):
    controller = _controller(request, exam_id)
    ok = await controller.complete()
    return {"ok": ok, **_state_to_dict(controller)}


@router.post("/api/tests/{exam_id}/leave")
async def leave_exam(exam_id: int, body: LeaveBody, request: Request):
    controller = _controller(request, exam_id)
    ok = controller.leave(body.confirm)
    return {"ok": ok, **_state_to_dict(controller)}
