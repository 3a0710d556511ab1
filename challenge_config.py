# FILE: spotitnow-backend/challenge_config.py

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class ChallengeConfig:
    """Tunables for region bucketing, challenge sampling and XP. Read once from the environment."""

    # Region grid
    REGION_CELL_DEGREES = float(os.environ.get('REGION_CELL_DEGREES', '0.25'))

    # Challenge periods
    CHALLENGE_TIMEZONE = os.environ.get('CHALLENGE_TIMEZONE', 'UTC')
    CHALLENGE_KINDS = ('daily', 'weekly')

    # Sampling policy
    DAILY_CHALLENGE_COUNT = int(os.environ.get('DAILY_CHALLENGE_COUNT', '3'))
    WEEKLY_CHALLENGE_COUNT = int(os.environ.get('WEEKLY_CHALLENGE_COUNT', '6'))
    EXCLUDE_MASTERED_ANIMALS = _env_bool('EXCLUDE_MASTERED_ANIMALS', False)
    RARITY_FLOOR = 10           # minimum selection weight
    RARE_THRESHOLD = 15         # probability below this is "rare"
    COMMON_THRESHOLD = 50       # probability at or above this is "common"
    MIN_SAMPLE_PROBABILITY = 1  # 0% means impossible in the biome

    # XP policy
    XP_PER_RARITY_POINT = 2
    MIN_TASK_XP = 10

    # Manifest generation
    GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-2.5-flash-lite')
    GEMINI_TIMEOUT_SECONDS = float(os.environ.get('GEMINI_TIMEOUT_SECONDS', '30'))
    MANIFEST_LOCK_SECONDS = int(os.environ.get('MANIFEST_LOCK_SECONDS', '60'))
    MANIFEST_WAIT_POLL_SECONDS = 0.25
    HIGH_PROBABILITY_THRESHOLD = 15
    MANIFEST_LIST_LIMIT = 100

    # Geocoding
    GEOCODER_USER_AGENT = os.environ.get('GEOCODER_USER_AGENT', 'SpotItNow/1.0 (Wildlife Spotting App)')
    GEOCODER_TIMEOUT_SECONDS = float(os.environ.get('GEOCODER_TIMEOUT_SECONDS', '5'))

    # Persistence
    MAX_WRITE_ATTEMPTS = 5
    FIRESTORE_BATCH_SIZE = 500


def get_gemini_api_keys():
    """Up to four Gemini keys for rotation; GEMINI_API_KEY is accepted as a single-key fallback."""
    keys = [os.environ.get(f"GEMINI_API_KEY_{i+1}") for i in range(4)]
    keys = [key for key in keys if key]
    if not keys and os.environ.get("GEMINI_API_KEY"):
        keys = [os.environ.get("GEMINI_API_KEY")]
    return keys
