"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 사용자에게 UUID 세션 ID를 발급하고, 세션별로 인증 토큰, 백엔드 클라이언트,
시험별 응시 컨트롤러를 보관한다. TTL(기본 1시간) 경과 시 자동 만료.
"""

import logging
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

import config
from exam_client.services.session_controller import ExamSessionController

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}

SESSION_TTL = config.SESSION_TTL


def _new_state() -> dict[str, Any]:
    return {
        "token": "",
        "backend": None,
        "controllers": {},
    }


def create_session() -> str:
    """새 세션을 생성하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> dict[str, Any] | None:
    """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None."""
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            # 만료된 세션의 정리는 cleanup_expired()가 맡는다
            return None
        _timestamps[sid] = time.time()  # 접근 시 갱신
        return _sessions[sid]


def get(sid: str, key: str, default=None):
    """세션에서 값 읽기."""
    session = get_session(sid)
    if session is None:
        return default
    return session.get(key, default)


def put(sid: str, key: str, value) -> None:
    """세션에 값 쓰기."""
    with _lock:
        if sid in _sessions:
            _sessions[sid][key] = value
            _timestamps[sid] = time.time()


def get_controller(sid: str, exam_id: int) -> Optional[ExamSessionController]:
    controllers: Dict[int, ExamSessionController] = get(sid, "controllers", {})
    return controllers.get(exam_id)


def put_controller(sid: str, exam_id: int, controller: ExamSessionController) -> Optional[ExamSessionController]:
    """컨트롤러를 등록하고, 같은 시험의 이전 컨트롤러가 있으면 반환 (호출자가 정리)."""
    with _lock:
        if sid not in _sessions:
            return None
        controllers = _sessions[sid]["controllers"]
        previous = controllers.get(exam_id)
        controllers[exam_id] = controller
        _timestamps[sid] = time.time()
    return previous


def reset(sid: str) -> dict[str, Any] | None:
    """세션 초기화 (토큰은 유지). 떼어낸 이전 상태를 반환하며 정리는 dispose()로."""
    with _lock:
        if sid not in _sessions:
            return None
        old = _sessions[sid]
        _sessions[sid] = _new_state()
        _sessions[sid]["token"] = old.get("token", "")
        _timestamps[sid] = time.time()
    return old


def cleanup_expired() -> List[dict[str, Any]]:
    """만료된 세션을 떼어내 반환. 호출자가 dispose()로 정리한다."""
    now = time.time()
    removed = []
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            removed.append(_sessions.pop(sid))
            del _timestamps[sid]
    return removed


def drain_all() -> List[dict[str, Any]]:
    """모든 세션을 떼어내 반환 (서버 종료 시)."""
    with _lock:
        removed = list(_sessions.values())
        _sessions.clear()
        _timestamps.clear()
    return removed


async def dispose(state: dict[str, Any]) -> None:
    """세션 상태의 컨트롤러 타이머를 멈추고 HTTP 클라이언트를 닫는다."""
    for controller in state.get("controllers", {}).values():
        controller.close()
    backend = state.get("backend")
    if backend is not None:
        try:
            await backend.aclose()
        except Exception as e:
            logger.warning(f"백엔드 클라이언트 종료 실패: {e}")
