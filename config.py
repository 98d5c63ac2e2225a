import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# 시험 백엔드 설정
API_BASE_URL = os.getenv("EXAM_API_URL", "http://localhost:3000/api")
API_TIMEOUT = float(os.getenv("EXAM_API_TIMEOUT", "10"))
API_TOKEN = os.getenv("EXAM_API_TOKEN", "")

# 시험 진행 설정
TICK_INTERVAL = 1.0               # 타이머 주기 (초)
WARNING_THRESHOLDS = (300, 60)    # 남은 시간 경고 시점 (초)
REDIRECT_DELAY = 2.0              # 이미 응시한 시험 → 목록 이동 지연 (초)
DEFAULT_PASS_PERCENTAGE = 40.0

# 세션 설정
SESSION_TTL = 3600                # 1시간
SESSION_CLEANUP_INTERVAL = 300    # 5분
