"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + 만료 세션 정리
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

import api.session as session
import config
from api.routes import router
from exam_client.services.backend import ExamBackend

SESSION_COOKIE = "exam_session"

logger = logging.getLogger(__name__)


def _default_backend_factory(token: str) -> ExamBackend:
    return ExamBackend(token=token or config.API_TOKEN)


async def _cleanup_loop(interval: float) -> None:
    """만료 세션 주기적 정리."""
    while True:
        await asyncio.sleep(interval)
        removed = session.cleanup_expired()
        for state in removed:
            await session.dispose(state)
        if removed:
            logger.info(f"만료 세션 {len(removed)}개 정리")


def create_app(
    backend_factory: Optional[Callable[[str], ExamBackend]] = None,
    cleanup_interval: float = config.SESSION_CLEANUP_INTERVAL,
) -> FastAPI:
    """
    Args:
        backend_factory:  토큰을 받아 ExamBackend를 만드는 함수 (테스트에서 교체)
        cleanup_interval: 만료 세션 정리 주기 (초)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup = asyncio.create_task(_cleanup_loop(cleanup_interval))
        try:
            yield
        finally:
            cleanup.cancel()
            for state in session.drain_all():
                await session.dispose(state)

    app = FastAPI(title="Exam Session Client", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.backend_factory = backend_factory or _default_backend_factory

    # CORS (모바일 브라우저 등 다양한 출처 허용)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 세션 미들웨어: 쿠키에서 세션 ID를 읽고, 없으면 새로 발급
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=session.SESSION_TTL,
        )
        return response

    app.include_router(router)

    @app.get("/")
    async def health():
        return {"ok": True, "backend": config.API_BASE_URL}

    return app
