"""
services/session_controller.py

시험 응시 세션 컨트롤러 (상태 기계).

단계:
  PREVIEW → STARTING → IN_PROGRESS ⇄ SUMMARY → SUBMITTING → COMPLETED

- 응시 시작/재개, 1초 카운트다운과 시간 종료 자동 제출
- 답안 즉시 반영 + 비동기 자동 저장 (실패해도 진행은 멈추지 않음)
- 문제/보기 섞기 (세션당 한 번 계산)
- 이전 문제 이동 제한, 검토 표시, 제출 요약 확인
- 제출 요청은 래치로 한 번에 하나만

백엔드 오류는 모두 이 클래스 안에서 Notice로 바뀌며 호출자에게 예외로 전달되지 않는다.
"""

import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Set

import config
from exam_client.models.question_model import Answer, Attempt, ExamDefinition
from exam_client.models.session_state import (
    Notice,
    Phase,
    Redirect,
    SessionState,
    SubmissionSummary,
)
from exam_client.services.backend import (
    BackendError,
    ExamAlreadyCompletedError,
    ExamBackend,
    SessionExpiredError,
)
from exam_client.services.exam_service import (
    build_summary,
    format_time,
    remaining_seconds,
    summarize_result,
    utcnow,
)
from exam_client.services.presentation import decode_answer, derive_presentation, is_answered
from exam_client.services.timer import CountdownTimer

logger = logging.getLogger(__name__)

_ACTIVE_PHASES = (Phase.IN_PROGRESS, Phase.SUMMARY)
_LEAVE_MESSAGE = "시험을 나가시겠습니까? 지금까지의 답안은 자동 저장되어 있습니다."


class ExamSessionController:
    """
    한 학생의 한 시험 응시를 관리한다.

    Args:
        exam_id:            시험 ID
        backend:            ExamBackend (또는 같은 메서드를 가진 객체)
        rng:                섞기에 사용할 난수 생성기
        clock:              현재 시각(UTC, 시간대 포함)을 돌려주는 함수
        tick_interval:      타이머 주기 (초)
        warning_thresholds: 경고를 띄울 남은 시간 (초)
        redirect_delay:     '이미 완료' 시 목록으로 이동하기까지의 지연 (초)
    """

    def __init__(
        self,
        exam_id: int,
        backend: ExamBackend,
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
        tick_interval: float = config.TICK_INTERVAL,
        warning_thresholds: Sequence[int] = config.WARNING_THRESHOLDS,
        redirect_delay: float = config.REDIRECT_DELAY,
    ):
        self.exam_id = exam_id
        self.backend = backend
        self.state = SessionState()
        self.exam: Optional[ExamDefinition] = None
        self.load_error: Optional[str] = None
        self.redirect: Optional[Redirect] = None
        self.closed = False

        self._rng = rng or random.Random()
        self._clock = clock
        self._thresholds = tuple(warning_thresholds)
        self._redirect_delay = redirect_delay
        self._timer = CountdownTimer(self.tick, tick_interval)
        self._notices: List[Notice] = []
        self._pending_saves: Set[asyncio.Task] = set()
        self._save_seq: Dict[int, int] = {}

    # ── 조회 ─────────────────────────────────────────────────────────────────

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def leave_guard_active(self) -> bool:
        return not self.closed and self.state.phase in _ACTIVE_PHASES

    @property
    def timer_running(self) -> bool:
        return self._timer.running

    @property
    def allow_previous_navigation(self) -> bool:
        return self.exam is None or self.exam.settings.allow_previous_navigation

    def summary(self) -> SubmissionSummary:
        return build_summary(self.state)

    def drain_notices(self) -> List[Notice]:
        notices, self._notices = self._notices, []
        return notices

    # ── 내부 헬퍼 ────────────────────────────────────────────────────────────

    def _notify(self, title: str, description: str = "", variant: str = "default") -> None:
        self._notices.append(Notice(title=title, description=description, variant=variant))
        log = logger.warning if variant == "destructive" else logger.info
        log(f"[시험 {self.exam_id}] {title} {description}".rstrip())

    def _redirect_to(self, target: str, attempt_id: Optional[int] = None, delay: float = 0.0) -> None:
        self.redirect = Redirect(
            target=target,
            attempt_id=attempt_id,
            not_before=self._clock() + timedelta(seconds=delay),
        )

    def _session_expired(self, error: SessionExpiredError) -> None:
        self._timer.cancel()
        self._notify("세션 만료", "다시 로그인해 주세요.", "destructive")
        self._redirect_to("login")

    def _accepting_input(self, action: str) -> bool:
        if self.closed:
            self._notify(action, "이미 종료된 시험 화면입니다.", "destructive")
            return False
        if self.state.phase == Phase.SUMMARY:
            self._notify(action, "제출 확인 중입니다. 취소 후 다시 시도하세요.", "destructive")
            return False
        if self.state.phase != Phase.IN_PROGRESS:
            self._notify(action, "진행 중인 시험이 아닙니다.", "destructive")
            return False
        return True

    def _navigation_restricted(self) -> None:
        self._notify("이동 제한", "이 시험은 이전 문제로 돌아갈 수 없습니다.", "destructive")

    def _derive_presentation(self, exam: ExamDefinition) -> None:
        order, options = derive_presentation(exam.questions, exam.settings, self._rng)
        self.state.presentation_order = order
        self.state.presentation_options = options
        self.state.current_question_index = 0
        self.state.marked_for_review = set()

    # ── 불러오기 / 재개 ──────────────────────────────────────────────────────

    async def load(self) -> None:
        """
        시험 정보를 불러와 첫 단계를 정한다.

        - 완료된 응시가 있으면 COMPLETED + 결과 화면 이동
        - 진행 중인 응시가 있으면 재개 (시간이 다 됐으면 곧바로 자동 제출)
        - 그 외에는 PREVIEW에 머문다
        불러오기 실패 시 load_error가 남고 start()는 거부된다. 실패 후에는 다시 호출할 수 있다.
        """
        if self.closed or self.exam is not None or self.state.phase != Phase.PREVIEW:
            return

        try:
            exam = await self.backend.get_exam_details(self.exam_id)
        except SessionExpiredError as e:
            self._session_expired(e)
            return
        except BackendError as e:
            self.load_error = e.message
            self._notify("시험을 불러오지 못했습니다", e.message, "destructive")
            return

        self.load_error = None
        self.exam = exam

        completed = exam.completed_attempt
        if completed is not None:
            self.state.attempt_id = completed.attempt_id
            self.state.phase = Phase.COMPLETED
            self._notify("이미 완료한 시험입니다", "결과 화면으로 이동합니다.")
            self._redirect_to("results", completed.attempt_id)
            return

        attempt = exam.open_attempt
        if attempt is not None:
            await self._resume(attempt)

    async def _resume(self, attempt: Attempt) -> None:
        exam = self.exam
        self.state.attempt_id = attempt.attempt_id
        # 서버가 같은 순서를 보장하지 않으므로 재개할 때마다 새로 계산
        self._derive_presentation(exam)

        remaining = remaining_seconds(attempt.start_time, exam.time_limit_minutes, self._clock())
        if remaining <= 0:
            self.state.time_left_seconds = 0
            self.state.phase = Phase.SUBMITTING
            self._notify("시험 시간 종료", "제한 시간이 지나 자동으로 제출합니다.", "destructive")
            await self.complete()
            return

        self.state.time_left_seconds = remaining
        if not await self._hydrate_answers(attempt.attempt_id):
            return
        self.state.phase = Phase.IN_PROGRESS
        self._timer.start()
        self._notify("시험 재개", f"남은 시간 {format_time(remaining)}")

    async def _hydrate_answers(self, attempt_id: int) -> bool:
        """저장 답안을 복원한다. 세션이 만료돼 재개할 수 없으면 False."""
        try:
            saved = await self.backend.get_saved_answers(attempt_id)
        except SessionExpiredError as e:
            self._session_expired(e)
            return False
        except BackendError as e:
            self._notify("저장된 답안을 불러오지 못했습니다", e.message, "destructive")
            return True

        answers: Dict[int, Answer] = {}
        for item in saved:
            if not item.answer_text:
                continue
            question = self.exam.question(item.question_id)
            if question is None:
                logger.debug(f"시험에 없는 문제의 저장 답안 무시: {item.question_id}")
                continue
            answers[item.question_id] = decode_answer(question, item.answer_text)
        self.state.answers = answers
        logger.info(f"[시험 {self.exam_id}] 저장된 답안 {len(answers)}개 복원")
        return True

    async def refresh(self) -> None:
        """
        화면을 다시 열 때 백엔드의 응시 기록을 다시 확인한다.

        그 사이 다른 곳에서 완료된 응시가 있으면 COMPLETED + 결과 화면 이동.
        출제 순서와 로컬 답안은 그대로 둔다.
        """
        if self.exam is None:
            await self.load()
            return
        if self.closed or self.state.is_submitting or self.state.phase == Phase.COMPLETED:
            return

        try:
            exam = await self.backend.get_exam_details(self.exam_id)
        except SessionExpiredError as e:
            self._session_expired(e)
            return
        except BackendError as e:
            logger.warning(f"[시험 {self.exam_id}] 응시 기록 재확인 실패: {e.message}")
            return

        completed = exam.completed_attempt
        if completed is None:
            return
        self._timer.cancel()
        self.exam = self.exam.model_copy(update={"attempts": exam.attempts})
        self.state.attempt_id = completed.attempt_id
        self.state.phase = Phase.COMPLETED
        self._notify("이미 완료한 시험입니다", "결과 화면으로 이동합니다.")
        self._redirect_to("results", completed.attempt_id)

    # ── 시작 ─────────────────────────────────────────────────────────────────

    async def start(self) -> bool:
        """PREVIEW에서 새 응시를 시작한다. 성공하면 True."""
        if self.closed:
            return False
        if self.exam is None:
            self._notify(
                "시험을 시작할 수 없습니다",
                self.load_error or "시험 정보를 아직 불러오지 않았습니다.",
                "destructive",
            )
            return False
        if self.state.phase != Phase.PREVIEW:
            logger.info(f"[시험 {self.exam_id}] {self.state.phase.value} 단계에서 시작 요청 무시")
            return False

        self.state.phase = Phase.STARTING
        try:
            started = await self.backend.start_attempt(self.exam_id)
        except ExamAlreadyCompletedError:
            self.state.phase = Phase.COMPLETED
            self._notify("이미 완료한 시험입니다", "시험 목록으로 이동합니다.", "destructive")
            self._redirect_to("tests", delay=self._redirect_delay)
            return False
        except SessionExpiredError as e:
            self.state.phase = Phase.PREVIEW
            self._session_expired(e)
            return False
        except BackendError as e:
            self.state.phase = Phase.PREVIEW
            self._notify("시험을 시작하지 못했습니다", e.message, "destructive")
            return False

        # 시작 응답의 스냅샷(문제, 설정, 제한 시간)이 우선
        snapshot = started.exam
        update = {
            name: getattr(snapshot, name)
            for name in ("questions", "settings", "time_limit_minutes")
            if name in snapshot.model_fields_set
        }
        self.exam = self.exam.model_copy(update=update)

        self.state.attempt_id = started.attempt_id
        self.state.time_left_seconds = self.exam.time_limit_seconds
        self.state.answers = {}
        self._derive_presentation(self.exam)
        self.state.phase = Phase.IN_PROGRESS
        self._timer.start()
        self._notify("시험 시작", "행운을 빕니다!")
        return True

    # ── 답안 ─────────────────────────────────────────────────────────────────

    def set_answer(self, question_id: int, value: Answer) -> bool:
        """
        답안을 즉시 반영하고 자동 저장을 예약한다.

        빈 값은 로컬 답안을 지우지만 서버에도 빈 값으로 저장한다.
        저장 실패는 알림만 남기고 로컬 답안은 되돌리지 않는다.
        """
        if not self._accepting_input("답안을 저장할 수 없습니다"):
            return False
        if all(q.id != question_id for q in self.state.presentation_order):
            self._notify("답안을 저장할 수 없습니다", f"이 시험에 없는 문제입니다: {question_id}", "destructive")
            return False

        if is_answered(value):
            self.state.answers[question_id] = value
        else:
            self.state.answers.pop(question_id, None)
        self._schedule_save(question_id, value)
        return True

    def _schedule_save(self, question_id: int, value: Answer) -> None:
        seq = self._save_seq.get(question_id, 0) + 1
        self._save_seq[question_id] = seq
        task = asyncio.get_running_loop().create_task(
            self._save_answer(self.state.attempt_id, question_id, value, seq)
        )
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _save_answer(self, attempt_id: int, question_id: int, value: Answer, seq: int) -> None:
        try:
            await self.backend.submit_answer(attempt_id, question_id, value)
        except SessionExpiredError as e:
            self._session_expired(e)
            return
        except BackendError as e:
            # 같은 문제의 더 최근 저장이 있으면 그 결과를 따른다
            if self._save_seq.get(question_id) == seq:
                self.state.unsaved_question_ids.add(question_id)
            self._notify("답안 자동 저장 실패", e.message, "destructive")
            return
        if self._save_seq.get(question_id) == seq:
            self.state.unsaved_question_ids.discard(question_id)

    async def flush_saves(self) -> None:
        """진행 중인 자동 저장이 모두 끝날 때까지 기다린다."""
        if not self._pending_saves:
            return
        results = await asyncio.gather(*list(self._pending_saves), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"[시험 {self.exam_id}] 자동 저장 작업 오류: {result!r}")

    # ── 이동 / 검토 표시 ─────────────────────────────────────────────────────

    def next(self) -> bool:
        if not self._accepting_input("다음 문제로 이동할 수 없습니다"):
            return False
        if self.state.current_question_index >= self.state.total_questions - 1:
            return False
        self.state.current_question_index += 1
        return True

    def previous(self) -> bool:
        if not self._accepting_input("이전 문제로 이동할 수 없습니다"):
            return False
        if not self.allow_previous_navigation:
            self._navigation_restricted()
            return False
        if self.state.current_question_index == 0:
            return False
        self.state.current_question_index -= 1
        return True

    def go_to(self, index: int) -> bool:
        if not self._accepting_input("문제로 이동할 수 없습니다"):
            return False
        if not 0 <= index < self.state.total_questions:
            self._notify("문제로 이동할 수 없습니다", f"없는 문제 번호입니다: {index + 1}", "destructive")
            return False
        if index < self.state.current_question_index and not self.allow_previous_navigation:
            self._navigation_restricted()
            return False
        self.state.current_question_index = index
        return True

    def toggle_review(self, index: Optional[int] = None) -> bool:
        """검토 표시를 토글하고 토글 후 표시 여부를 반환한다."""
        target = self.state.current_question_index if index is None else index
        marked = self.state.marked_for_review
        if not self._accepting_input("검토 표시를 바꿀 수 없습니다"):
            return target in marked
        if not 0 <= target < self.state.total_questions:
            self._notify("검토 표시를 바꿀 수 없습니다", f"없는 문제 번호입니다: {target + 1}", "destructive")
            return False
        if target in marked:
            marked.discard(target)
            return False
        marked.add(target)
        return True

    # ── 타이머 ───────────────────────────────────────────────────────────────

    async def tick(self) -> None:
        """1초 경과 처리. 0초가 되면 한 번만 자동 제출한다."""
        if self.closed or self.state.phase not in _ACTIVE_PHASES:
            return

        before = self.state.time_left_seconds
        if before > 0:
            self.state.time_left_seconds -= 1
        left = self.state.time_left_seconds

        # 시작/재개 시점이 정확히 경고 시점이어도 첫 tick에서 경고
        for value in (before, left):
            if value in self._thresholds and value not in self.state.warned_thresholds:
                self.state.warned_thresholds.add(value)
                self._notify("남은 시간 경고", f"{format_time(value)} 남았습니다. 서둘러 제출하세요.", "destructive")

        if left == 0:
            self.state.phase = Phase.SUBMITTING
            self._timer.cancel()
            self._notify("시험 시간 종료", "답안을 자동으로 제출합니다.", "destructive")
            await self.complete()

    # ── 제출 ─────────────────────────────────────────────────────────────────

    def request_submit(self) -> Optional[SubmissionSummary]:
        """제출 요약 단계로 들어간다. 실제 제출은 complete()로 확인해야 한다."""
        if not self._accepting_input("제출할 수 없습니다"):
            return None
        self.state.phase = Phase.SUMMARY
        return build_summary(self.state)

    def cancel_submit(self) -> bool:
        if self.closed or self.state.phase != Phase.SUMMARY:
            return False
        self.state.phase = Phase.IN_PROGRESS
        return True

    async def complete(self) -> bool:
        """
        응시를 완료한다 (요약 확인, 재시도, 시간 종료 자동 제출 공용).

        동시에 두 번 호출돼도 백엔드 완료 요청은 하나만 나간다.
        실패하면 SUBMITTING에 머물고 래치를 풀어 다시 시도할 수 있게 한다.
        """
        if self.state.is_submitting:
            logger.info(f"[시험 {self.exam_id}] 제출 진행 중, 중복 요청 무시")
            return False
        if self.state.phase == Phase.COMPLETED:
            return False
        if self.closed or self.state.phase not in (Phase.SUMMARY, Phase.SUBMITTING):
            self._notify("제출할 수 없습니다", "제출 요약을 먼저 확인하세요.", "destructive")
            return False

        self.state.is_submitting = True
        self.state.phase = Phase.SUBMITTING
        self._timer.cancel()
        attempt_id = self.state.attempt_id

        try:
            payload = await self.backend.complete_attempt(attempt_id)
        except SessionExpiredError as e:
            self.state.is_submitting = False
            self._session_expired(e)
            return False
        except BackendError as e:
            self.state.is_submitting = False
            self._notify("제출 실패", f"{e.message} 다시 시도해 주세요.", "destructive")
            return False

        self.state.result = summarize_result(attempt_id, payload, self.exam)
        self.state.phase = Phase.COMPLETED
        self._notify("제출 완료", "답안이 제출되었습니다.")
        self._redirect_to("results", attempt_id)
        return True

    # ── 화면 이탈 / 정리 ─────────────────────────────────────────────────────

    def before_unload(self) -> Optional[str]:
        """진행 중이면 이탈 확인 메시지, 아니면 None."""
        return _LEAVE_MESSAGE if self.leave_guard_active else None

    def leave(self, confirm: bool = False) -> bool:
        if self.leave_guard_active and not confirm:
            self._notify("시험 진행 중", "나가려면 확인이 필요합니다.", "destructive")
            return False
        self.close()
        return True

    def close(self) -> None:
        """타이머를 멈추고 이후 조작을 막는다. 자동 저장 요청은 끝까지 진행된다."""
        self._timer.cancel()
        if not self.closed:
            self.closed = True
            logger.info(f"[시험 {self.exam_id}] 세션 종료 ({self.state.phase.value})")
