"""
Weighted draw of challenge animals from a region's probability manifest.

Selection weight grows with sighting probability but never drops below RARITY_FLOOR,
so rare animals stay in play. On top of that every draw may reserve a few "rare slots"
that are filled only from animals under RARE_THRESHOLD. Animals with probability 0
are treated as impossible for the region and are never drawn.

The draw is a pure function of (manifest, kind, mastered set, seed).
"""

import logging
import random
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from challenge_config import ChallengeConfig
from exceptions import UnknownChallengeKind
from models import ChallengeTask

logger = logging.getLogger(__name__)


class DrawPolicy(BaseModel):
    count: int = Field(ge=1)
    rare_slots: int = Field(default=0, ge=0)
    rare_slot_chance: float = Field(default=0.0, ge=0.0, le=1.0)
    max_required: int = Field(default=1, ge=1)


DEFAULT_POLICIES = {
    'daily': DrawPolicy(count=ChallengeConfig.DAILY_CHALLENGE_COUNT, rare_slots=1, rare_slot_chance=0.3, max_required=2),
    'weekly': DrawPolicy(count=ChallengeConfig.WEEKLY_CHALLENGE_COUNT, rare_slots=2, rare_slot_chance=0.6, max_required=3),
}


def weighted_sample(candidates, k, weight_fn, rng):
    """k items without replacement, P(selected) increasing with weight (Efraimidis-Spirakis keys)."""
    if k <= 0 or not candidates:
        return []
    keyed = []
    for i, c in enumerate(candidates):
        weight = weight_fn(c)
        # Zero-weight items only fill slots nothing else can
        keyed.append((rng.random() ** (1.0 / weight) if weight > 0 else -1.0, i))
    keyed.sort(reverse=True)
    return [candidates[i] for _, i in keyed[:k]]


class ChallengeSampler:

    def __init__(self, policies: Optional[Dict[str, DrawPolicy]] = None, exclude_mastered=None,
                 rarity_floor=None, rare_threshold=None, common_threshold=None, min_probability=None):
        self.policies = policies or DEFAULT_POLICIES
        self.exclude_mastered = ChallengeConfig.EXCLUDE_MASTERED_ANIMALS if exclude_mastered is None else exclude_mastered
        self.rarity_floor = ChallengeConfig.RARITY_FLOOR if rarity_floor is None else rarity_floor
        self.rare_threshold = ChallengeConfig.RARE_THRESHOLD if rare_threshold is None else rare_threshold
        self.common_threshold = ChallengeConfig.COMMON_THRESHOLD if common_threshold is None else common_threshold
        self.min_probability = ChallengeConfig.MIN_SAMPLE_PROBABILITY if min_probability is None else min_probability

    def policy(self, kind):
        try:
            return self.policies[kind]
        except KeyError:
            raise UnknownChallengeKind(f"Invalid challenge kind: {kind}")

    def selection_weight(self, entry):
        return float(max(entry.probability, self.rarity_floor))

    def required_count(self, probability, policy):
        if probability < self.rare_threshold:
            required = 1
        elif probability < self.common_threshold:
            required = 2
        else:
            required = 3
        return min(required, policy.max_required)

    def candidates(self, entries, already_mastered: Optional[Iterable[str]] = None):
        mastered = {name.lower() for name in (already_mastered or ())} if self.exclude_mastered else set()
        pool, seen = [], set()
        for entry in entries:
            name = entry.name.lower()
            if name in seen or name in mastered or entry.probability < self.min_probability:
                continue
            seen.add(name)
            pool.append(entry)
        return pool

    def sample(self, manifest, kind, already_mastered=None, seed=None) -> List[ChallengeTask]:
        """
        Draws the tasks for one challenge section.

        Args:
            manifest: RegionManifest (or any list of ManifestEntry)
            kind: 'daily' or 'weekly'
            already_mastered: animal names the user has discovered; only used when
                exclude_mastered is on
            seed: makes the draw reproducible

        Returns:
            Tasks with progressCount 0, at most policy.count of them, fewer if the
            manifest has fewer eligible animals.
        """
        policy = self.policy(kind)
        entries = getattr(manifest, 'animalManifest', manifest)
        rng = random.Random(seed)

        pool = self.candidates(entries, already_mastered)
        count = min(policy.count, len(pool))
        if count == 0:
            logger.warning(f"No eligible animals for a {kind} challenge (manifest size {len(entries)}).")
            return []

        rare_pool = [e for e in pool if e.probability < self.rare_threshold]
        rare_slots = sum(1 for _ in range(policy.rare_slots) if rng.random() < policy.rare_slot_chance)
        rare_slots = min(rare_slots, len(rare_pool), count)

        picked = weighted_sample(rare_pool, rare_slots, self.selection_weight, rng)
        picked_names = {e.name for e in picked}
        remaining = [e for e in pool if e.name not in picked_names]
        picked += weighted_sample(remaining, count - len(picked), self.selection_weight, rng)

        tasks = [
            ChallengeTask(
                animalName=e.name,
                probability=e.probability,
                requiredCount=self.required_count(e.probability, policy),
            )
            for e in picked
        ]
        logger.info(f"{kind.capitalize()} challenge drawn: "
                    f"{[f'{t.animalName} ({t.probability}%) x{t.requiredCount}' for t in tasks]}")
        return tasks
