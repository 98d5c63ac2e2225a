"""
main.py — 시험 응시 클라이언트 서버 진입점
"""

import logging
import sys

from config import DEFAULT_HOST, DEFAULT_PORT, LOG_FILE

# ── 로깅 설정 ────────────────────────────────────────────────────────────────

def _configure_logging() -> None:
    try:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s [%(levelname)s] %(message)s',
            handlers=[
                logging.FileHandler(LOG_FILE, encoding='utf-8'),
                logging.StreamHandler(sys.stdout)
            ]
        )
    except PermissionError:
        # 로그 파일 점유 시 콘솔 출력만 사용
        logging.basicConfig(level=logging.INFO)


logger = logging.getLogger(__name__)

# ── 메인 실행 ────────────────────────────────────────────────────────────────

def main() -> None:
    _configure_logging()

    import uvicorn
    from api.app import create_app

    url = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"
    logger.info(f"=== Exam Session Client Started === {url}")

    try:
        uvicorn.run(create_app(), host=DEFAULT_HOST, port=DEFAULT_PORT, log_level="warning")
    except KeyboardInterrupt:
        logger.info("사용자에 의해 종료되었습니다.")


if __name__ == "__main__":
    main()
