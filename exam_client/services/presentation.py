"""
services/presentation.py

문제 출제 순서/보기 표시 계산과 답안 직렬화.
순수 Python 함수로 구성되며 전역 상태 변경 없음. 난수는 호출자가 넘긴 Random 인스턴스만 사용한다.
"""

import json
import logging
import math
import random
import re
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from exam_client.models.question_model import Answer, ExamSettings, Question, QuestionType
from exam_client.models.session_state import MatchItems, PresentedOption

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BLANK_PATTERN = re.compile(r"_+")
_TRUE_FALSE_PAIRS: List[Tuple[str, str]] = [("true", "True"), ("false", "False")]


def shuffled(items: Sequence[T], rng: random.Random) -> List[T]:
    """원본은 건드리지 않고 균등 무작위 순열(Fisher–Yates)을 반환한다."""
    result = list(items)
    rng.shuffle(result)
    return result


def option_pairs(question: Question) -> List[Tuple[str, str]]:
    """
    문제의 원래 보기를 (값, 보기 텍스트) 쌍으로 반환한다.

    리스트 보기의 값은 원래 위치 기준 소문자(a, b, c ...),
    매핑 보기의 값은 매핑 키이다. 보기를 섞어도 값은 바뀌지 않는다.
    """
    if question.type == QuestionType.MCQ:
        if isinstance(question.options, list):
            return [(chr(97 + i), text) for i, text in enumerate(question.options)]
        if isinstance(question.options, dict):
            return list(question.options.items())
        return []
    if question.type == QuestionType.TRUE_FALSE:
        return list(_TRUE_FALSE_PAIRS)
    if question.type in (QuestionType.FILL_IN_THE_BLANK, QuestionType.MATCH, QuestionType.ESSAY):
        return []
    raise ValueError(f"처리되지 않은 문제 유형: {question.type}")


def present_options(
    question: Question,
    shuffle: bool,
    rng: random.Random,
) -> List[PresentedOption]:
    """표시용 보기 리스트. 라벨은 표시 위치 기준 A, B, C ... 로 다시 매긴다."""
    pairs = option_pairs(question)
    # 참/거짓은 고정 순서
    if shuffle and question.type == QuestionType.MCQ:
        pairs = shuffled(pairs, rng)
    return [
        PresentedOption(label=chr(65 + pos), value=value, text=text)
        for pos, (value, text) in enumerate(pairs)
    ]


def derive_presentation(
    questions: Sequence[Question],
    settings: ExamSettings,
    rng: random.Random,
) -> Tuple[List[Question], Dict[int, List[PresentedOption]]]:
    """
    출제 순서와 문제별 표시 보기를 계산한다.

    시작 또는 재개 시 한 번만 호출하고 결과를 SessionState에 저장해야 한다.
    화면을 다시 그릴 때마다 호출하면 순서가 매번 바뀐다.

    Returns:
        (presentation_order, {question.id: [PresentedOption, ...]})
    """
    order = shuffled(questions, rng) if settings.shuffle_questions else list(questions)
    options = {
        q.id: present_options(q, settings.shuffle_options, rng)
        for q in order
    }
    logger.info(
        f"출제 순서 계산: {len(order)}문항 "
        f"(문제 섞기={settings.shuffle_questions}, 보기 섞기={settings.shuffle_options})"
    )
    return order, options


def _split_items(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",")]


def match_items(question: Question) -> MatchItems:
    """
    짝짓기 문제의 왼쪽/오른쪽 항목을 원래 순서대로 반환한다.

    우선순위:
      1. left_side / right_side (쉼표 구분)
      2. options 매핑의 'left' / 'right' 키
      3. options 매핑의 키 / 값
      4. options 리스트를 절반(올림)으로 나눈 앞 / 뒤
    """
    if question.left_side and question.right_side:
        return MatchItems(left=_split_items(question.left_side), right=_split_items(question.right_side))

    opts = question.options
    if isinstance(opts, dict):
        if opts.get("left") and opts.get("right"):
            return MatchItems(left=_split_items(opts["left"]), right=_split_items(opts["right"]))
        return MatchItems(
            left=[k.strip() for k in opts],
            right=[v.strip() for v in opts.values()],
        )
    if isinstance(opts, list):
        mid = math.ceil(len(opts) / 2)
        return MatchItems(
            left=[item.strip() for item in opts[:mid]],
            right=[item.strip() for item in opts[mid:]],
        )
    return MatchItems()


def blank_count(question: Question) -> int:
    """빈칸(연속된 '_') 개수. 본문에 빈칸 표시가 없으면 1."""
    return len(_BLANK_PATTERN.findall(question.question_text)) or 1


def is_answered(answer: Optional[Answer]) -> bool:
    if answer is None:
        return False
    if isinstance(answer, dict):
        return any(str(v).strip() for v in answer.values())
    return bool(str(answer).strip())


def encode_answer(answer: Answer) -> str:
    """전송용 답안 문자열. 매핑은 JSON으로 직렬화한다."""
    if isinstance(answer, dict):
        return json.dumps(answer, ensure_ascii=False)
    return answer


def decode_answer(question: Optional[Question], answer_text: str) -> Answer:
    """
    저장된 답안 문자열을 복원한다.

    짝짓기/빈칸 문제는 JSON 객체로 저장됐을 수 있으므로 매핑으로 되돌린다.
    그 외 유형이나 JSON이 아닌 값은 문자열 그대로 둔다.
    """
    if question is None or question.type not in (QuestionType.MATCH, QuestionType.FILL_IN_THE_BLANK):
        return answer_text
    try:
        parsed = json.loads(answer_text)
    except ValueError:
        return answer_text
    if isinstance(parsed, dict):
        return {str(k): "" if v is None else str(v) for k, v in parsed.items()}
    return answer_text
