from typing import Final, List
import os
from dotenv import load_dotenv

load_dotenv()

# =============================================
# GLOBAL SETTINGS
# Settings that apply to the entire application
# =============================================

DEBUG: Final[bool] = os.getenv("DEBUG", "0") == "1"
LOG_FORMAT: Final[str] = '%(asctime)s %(levelname)s %(name)s: %(message)s'

# =============================================
# GAMIFICATION ENGINE
# =============================================

# How deep achievement rewards may chain back into achievement evaluation
MAX_ACHIEVEMENT_DEPTH: Final[int] = int(os.getenv("GAMIFICATION_MAX_ACHIEVEMENT_DEPTH", "3"))

# Upper bound on unlocks processed by a single top-level operation
MAX_ACHIEVEMENT_ITERATIONS: Final[int] = int(os.getenv("GAMIFICATION_MAX_ACHIEVEMENT_ITERATIONS", "50"))

# Operation status registry (polling of long-running batch operations)
OPERATION_STATUS_TTL_SECONDS: Final[int] = int(os.getenv("OPERATION_STATUS_TTL_SECONDS", "3600"))
OPERATION_STATUS_MAX_ENTRIES: Final[int] = int(os.getenv("OPERATION_STATUS_MAX_ENTRIES", "500"))

# Comma-separated ISO dates on which manual grants may be restricted
HOLIDAYS: Final[List[str]] = [
    item.strip() for item in os.getenv("GAMIFICATION_HOLIDAYS", "").split(",") if item.strip()
]
