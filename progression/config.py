"""Configuration management"""
import logging
import os

from dotenv import load_dotenv

load_dotenv()

# Environment ("production" self-heals invariant violations, anything else fails fast)
APP_ENV: str = os.getenv("APP_ENV", "development")

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Calendar day boundaries for users without an explicit timezone
DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", "UTC")

# Leveling curve: xp_required(level) = floor(BASE_XP * level ** XP_GROWTH_RATE)
BASE_XP: int = int(os.getenv("BASE_XP", "100"))
XP_GROWTH_RATE: float = float(os.getenv("XP_GROWTH_RATE", "1.5"))
PRESTIGE_MIN_LEVEL: int = int(os.getenv("PRESTIGE_MIN_LEVEL", "50"))
MAX_TOTAL_XP: int = int(os.getenv("MAX_TOTAL_XP", str(2**63 - 1)))

# Points
CONSISTENCY_BONUS_BASE: int = int(os.getenv("CONSISTENCY_BONUS_BASE", "10"))
CONSISTENCY_WINDOW_DAYS: int = int(os.getenv("CONSISTENCY_WINDOW_DAYS", "30"))

# Analytics
MINIMUM_SAMPLE_SIZE: int = int(os.getenv("MINIMUM_SAMPLE_SIZE", "14"))

# Observability
ENABLE_METRICS: bool = os.getenv("ENABLE_METRICS", "true").lower() == "true"


def is_production() -> bool:
    return APP_ENV.lower() == "production"


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger"""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    )


# Validation
def validate_config() -> None:
    """Validate numeric configuration"""
    if BASE_XP <= 0:
        raise ValueError("BASE_XP must be positive")
    if XP_GROWTH_RATE <= 0:
        raise ValueError("XP_GROWTH_RATE must be positive")
    if PRESTIGE_MIN_LEVEL < 2:
        raise ValueError("PRESTIGE_MIN_LEVEL must be at least 2")
    if CONSISTENCY_WINDOW_DAYS <= 0:
        raise ValueError("CONSISTENCY_WINDOW_DAYS must be positive")
    if MINIMUM_SAMPLE_SIZE < 2:
        raise ValueError("MINIMUM_SAMPLE_SIZE must be at least 2")
