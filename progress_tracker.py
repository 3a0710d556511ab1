import logging
from typing import List

from google.cloud import firestore

from challenge_config import ChallengeConfig
from models import ChallengeTransition, UserChallenge
from timezone_utils import ensure_utc, utc_now
from xp_awarder import compute_xp_potential

logger = logging.getLogger(__name__)


def sighting_key(animal_name, confirmed_at, sighting_id=None):
    if sighting_id:
        return str(sighting_id)
    return f"{animal_name.strip().lower()}@{confirmed_at.isoformat()}"


def apply_sighting(section, animal_name, key, confirmed_at, now):
    """
    Counts one sighting against a section.

    Returns (updated_section, task) or (None, None) when the sighting does not count:
    the section is missing, completed or expired, the sighting falls outside its window,
    it was already counted, or no unfinished task names the animal.
    """
    if section is None or section.completed or not section.is_live(now) or not section.accepts(confirmed_at):
        return None, None
    if key in section.sightingKeys:
        return None, None

    target = animal_name.strip().lower()
    index = next(
        (i for i, t in enumerate(section.animals)
         if t.animalName.lower() == target and t.progressCount < t.requiredCount),
        None,
    )
    if index is None:
        return None, None

    animals = list(section.animals)
    task = animals[index]
    animals[index] = task.model_copy(update={'progressCount': min(task.progressCount + 1, task.requiredCount)})
    completed = all(t.is_done for t in animals)
    updated = section.model_copy(update={
        'animals': animals,
        'sightingKeys': section.sightingKeys + [key],
        'completed': completed,
        'completedAt': confirmed_at if completed else None,
    })
    return updated, animals[index]


@firestore.transactional
def apply_sighting_transaction(transaction, ref, user_id, animal_name, key, confirmed_at, now, xp_awarder):
    """
    Atomically counts the sighting against the record's live sections. A section that
    completes has its XP recorded and paid in the same commit.

    Returns (record, {kind: (section, task)}, {kind: xp}).
    """
    snapshot = ref.get(transaction=transaction)
    if not snapshot.exists:
        return None, {}, {}
    record = UserChallenge.model_validate(snapshot.to_dict())

    changed, awarded = {}, {}
    for kind in ChallengeConfig.CHALLENGE_KINDS:
        section, task = apply_sighting(record.section(kind), animal_name, key, confirmed_at, now)
        if section is None:
            continue
        if section.completed:
            amount = section.xpPotential or compute_xp_potential(section.animals)
            section = section.model_copy(update={'xpAwarded': amount})
            xp_awarder.award(user_id, amount, f"{kind.capitalize()} Challenge Completed", transaction)
            awarded[kind] = amount
        changed[kind] = (section, task)
    if not changed:
        return record, {}, {}

    updates = {kind: section.model_dump() for kind, (section, _) in changed.items()}
    updates['updatedAt'] = now
    transaction.update(ref, updates)
    return record, changed, awarded


class ProgressTracker:
    """
    Applies confirmed sightings to the user's active challenge record, the one
    UserChallengeStore.get_active_only() shows. Progress, completion and the XP payout
    commit in one transaction, so XP is paid exactly once.
    """

    def __init__(self, db, user_challenge_store, xp_awarder, clock=utc_now):
        self.db = db
        self.user_challenge_store = user_challenge_store
        self.xp_awarder = xp_awarder
        self.clock = clock

    def on_sighting_confirmed(self, user_id, animal_name, confirmed_at=None, sighting_id=None) -> List[ChallengeTransition]:
        if not animal_name or not animal_name.strip():
            logger.warning(f"Ignoring sighting without animal name for {user_id}")
            return []

        now = self.clock()
        confirmed_at = ensure_utc(confirmed_at or now)
        key = sighting_key(animal_name, confirmed_at, sighting_id)

        ref = self.user_challenge_store.active_record_ref(user_id)
        if ref is None:
            logger.info(f"No active challenges for {user_id}, sighting of {animal_name} not counted.")
            return []

        transaction = self.db.transaction(max_attempts=ChallengeConfig.MAX_WRITE_ATTEMPTS)
        record, changed, awarded = apply_sighting_transaction(
            transaction, ref, user_id, animal_name, key, confirmed_at, now, self.xp_awarder)
        if not changed:
            return []

        level = self._level_after(user_id, sum(awarded.values())) if awarded else None
        transitions = []
        for kind, (section, task) in changed.items():
            just_completed = kind in awarded
            if just_completed:
                logger.info(f"{kind.capitalize()} challenge completed by {user_id} in {record.regionKey}: "
                            f"+{awarded[kind]} XP")
            transitions.append(ChallengeTransition(
                kind=kind,
                regionKey=record.regionKey,
                animalName=task.animalName,
                progressCount=task.progressCount,
                requiredCount=task.requiredCount,
                justCompleted=just_completed,
                xpAwarded=awarded.get(kind, 0),
                level=level if just_completed else None,
            ))
        logger.info(f"Sighting of {animal_name} by {user_id} advanced {len(transitions)} challenge section(s).")
        return transitions

    def _level_after(self, user_id, gained):
        # XP is already committed at this point; a failed read only loses the summary
        try:
            return self.xp_awarder.level_summary(user_id, gained)
        except Exception as e:
            logger.warning(f"Could not read level for {user_id} after XP award: {e}")
            return None
