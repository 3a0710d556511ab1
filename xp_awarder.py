import logging
from google.cloud import firestore

from challenge_config import ChallengeConfig
from models import LevelSummary

logger = logging.getLogger(__name__)

# XP required to reach each level (index 0 = level 1)
LEVEL_THRESHOLDS = [
    0, 100, 250, 500, 850, 1300, 1850, 2500, 3300, 4200,
    5300, 6500, 7900, 9500, 11300, 13400, 15800, 18500, 21600, 25000,
    29000, 33500, 38500, 44000, 50000,
]

LEVEL_TITLES = {
    1: 'Novice Spotter', 2: 'Curious Observer', 3: 'Nature Watcher', 4: 'Trail Walker',
    5: 'Wildlife Scout', 6: 'Nature Explorer', 7: 'Animal Tracker', 8: 'Wildlife Enthusiast',
    9: 'Nature Guide', 10: 'Seasoned Spotter', 11: 'Wildlife Expert', 12: 'Nature Specialist',
    13: 'Master Tracker', 14: 'Wildlife Veteran', 15: 'Nature Master', 16: 'Elite Spotter',
    17: 'Wildlife Sage', 18: 'Nature Legend', 19: 'Grand Naturalist', 20: 'Master Naturalist',
    21: 'Wildlife Champion', 22: 'Nature Guardian', 23: 'Elite Naturalist', 24: 'Wildlife Luminary',
    25: 'Master Spotter',
}


def calculate_level(xp):
    for i in range(len(LEVEL_THRESHOLDS) - 1, -1, -1):
        if xp >= LEVEL_THRESHOLDS[i]:
            return i + 1
    return 1


def get_level_progress(xp):
    """Progress within the current level, as used by profile screens."""
    level = calculate_level(xp)
    current_threshold = LEVEL_THRESHOLDS[level - 1]
    if level >= len(LEVEL_THRESHOLDS):
        return {'level': level, 'title': LEVEL_TITLES[level], 'currentLevelXP': xp - current_threshold,
                'xpForNextLevel': 0, 'progressPercent': 100, 'isMaxLevel': True}
    next_threshold = LEVEL_THRESHOLDS[level]
    span = next_threshold - current_threshold
    return {
        'level': level,
        'title': LEVEL_TITLES[level],
        'currentLevelXP': xp - current_threshold,
        'xpForNextLevel': span,
        'progressPercent': min(100, round((xp - current_threshold) / span * 100)),
        'isMaxLevel': False,
    }


def task_xp(task, per_point=None, minimum=None):
    per_point = ChallengeConfig.XP_PER_RARITY_POINT if per_point is None else per_point
    minimum = ChallengeConfig.MIN_TASK_XP if minimum is None else minimum
    return max((100 - task.probability) * per_point, minimum) * task.requiredCount


def compute_xp_potential(tasks):
    """Rarer animals are worth more; each required sighting counts."""
    return int(sum(task_xp(t) for t in tasks))


class XPAwarder:
    """
    Pays challenge XP into the user ledger (users/{userId}.experiencePoints).

    award() only stages writes on the caller's transaction (or batch) so the payout commits
    together with the completion that triggered it; the caller records xpAwarded on the
    section in that same write. It does not check for double payment; the caller's
    completed-flag transition is the guard.
    """

    def __init__(self, db, users_collection='users'):
        self.db = db
        self.users_collection = users_collection

    def award(self, user_id, amount, reason, transaction):
        user_ref = self.db.collection(self.users_collection).document(user_id)
        transaction.set(user_ref, {
            'experiencePoints': firestore.Increment(amount),
            'challengesCompleted': firestore.Increment(1),
        }, merge=True)
        logger.info(f"Staged {amount} XP for {user_id}: {reason}")

    def level_summary(self, user_id, gained=0):
        snapshot = self.db.collection(self.users_collection).document(user_id).get()
        xp = int((snapshot.to_dict() or {}).get('experiencePoints', 0)) if snapshot.exists else 0
        level = calculate_level(xp)
        return LevelSummary(
            experiencePoints=xp,
            level=level,
            title=LEVEL_TITLES[level],
            leveledUp=level > calculate_level(max(0, xp - gained)),
        )
