import json
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

MIN_MATCH_SIZE = 2
MAX_MATCH_SIZE = 6
MAX_POOLS_PER_GUILD = int(os.getenv("MAX_POOLS_PER_GUILD", "10"))
MAX_MEMBERS_PER_POOL = int(os.getenv("MAX_MEMBERS_PER_POOL", "100"))
MAX_EXCLUSIONS_PER_MEMBER = int(os.getenv("MAX_EXCLUSIONS_PER_MEMBER", "20"))
MAX_POOL_NAME_LENGTH = 100
MAX_POOL_DESC_LENGTH = 500
MAX_ACTIVITY_SUGGESTION_LENGTH = 200

POOL_FREQUENCIES = ("weekly", "biweekly", "monthly")
DEFAULT_MATCH_SIZE = 2

DEFAULT_COMPATIBILITY_SCORE = float(os.getenv("DEFAULT_COMPATIBILITY_SCORE", "50.0"))
ROUND_WORKERS = int(os.getenv("ROUND_WORKERS", "4"))
ROUND_TICK_SECONDS = int(os.getenv("ROUND_TICK_SECONDS", "300"))
ROUND_TICK_DEADLINE_SECONDS = float(os.getenv("ROUND_TICK_DEADLINE_SECONDS", "240"))
RUN_SCHEDULER = os.getenv("RUN_SCHEDULER", "false").lower() == "true"
MATCH_HISTORY_LIMIT = int(os.getenv("MATCH_HISTORY_LIMIT", "20"))

DEFAULT_MATCHING_CONFIG: dict[str, Any] = {
    "variety_weight": float(os.getenv("VARIETY_WEIGHT", "0.6")),
    "compatibility_weight": float(os.getenv("COMPATIBILITY_WEIGHT", "0.4")),
    "recency_days": int(os.getenv("RECENCY_DAYS", "30")),
}

if os.getenv("MATCHING_CONFIG_JSON"):
    try:
        DEFAULT_MATCHING_CONFIG.update(json.loads(os.getenv("MATCHING_CONFIG_JSON", "{}")))
    except json.JSONDecodeError:
        logger.warning("MATCHING_CONFIG_JSON is not valid JSON; keeping environment defaults")
