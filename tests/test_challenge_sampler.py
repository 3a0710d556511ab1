import random

import pytest

from challenge_sampler import ChallengeSampler, DEFAULT_POLICIES, DrawPolicy, weighted_sample
from exceptions import UnknownChallengeKind
from models import ManifestEntry
from conftest import AUSTIN_PROBABILITIES

MANIFEST = [ManifestEntry(name=name, probability=p) for name, p in AUSTIN_PROBABILITIES.items()]
RARE = {e.name for e in MANIFEST if 0 < e.probability < 15}
COMMON = {e.name for e in MANIFEST if e.probability >= 50}


class TestBounds:
    @pytest.mark.parametrize("kind", ["daily", "weekly"])
    def test_count_and_required_count_bounds(self, kind):
        sampler = ChallengeSampler()
        policy = DEFAULT_POLICIES[kind]
        for seed in range(200):
            tasks = sampler.sample(MANIFEST, kind, seed=seed)
            assert len(tasks) == policy.count
            assert len({t.animalName for t in tasks}) == len(tasks)
            for task in tasks:
                assert 1 <= task.requiredCount <= policy.max_required
                assert task.progressCount == 0

    def test_small_manifest_returns_everything_eligible(self):
        manifest = [ManifestEntry(name="Bobcat", probability=5), ManifestEntry(name="Coyote", probability=12)]
        tasks = ChallengeSampler().sample(manifest, "weekly", seed=1)
        assert sorted(t.animalName for t in tasks) == ["Bobcat", "Coyote"]

    def test_empty_manifest(self):
        assert ChallengeSampler().sample([], "daily", seed=1) == []

    def test_impossible_animals_never_drawn(self):
        sampler = ChallengeSampler()
        for seed in range(200):
            names = {t.animalName for t in sampler.sample(MANIFEST, "weekly", seed=seed)}
            assert not names & {"Snow Leopard", "Emperor Penguin"}

    def test_only_impossible_animals(self):
        manifest = [ManifestEntry(name="Snow Leopard", probability=0)]
        assert ChallengeSampler().sample(manifest, "daily", seed=3) == []

    def test_duplicate_names_collapsed(self):
        manifest = [ManifestEntry(name="Bobcat", probability=5), ManifestEntry(name="bobcat", probability=50)]
        tasks = ChallengeSampler().sample(manifest, "daily", seed=1)
        assert [t.animalName for t in tasks] == ["Bobcat"]


class TestDeterminism:
    def test_same_seed_same_draw(self):
        sampler = ChallengeSampler()
        assert sampler.sample(MANIFEST, "weekly", seed="user:r25:1:2:weekly:2025-06-11") == \
            sampler.sample(MANIFEST, "weekly", seed="user:r25:1:2:weekly:2025-06-11")

    def test_different_seeds_vary(self):
        sampler = ChallengeSampler()
        draws = {tuple(t.animalName for t in sampler.sample(MANIFEST, "daily", seed=s)) for s in range(50)}
        assert len(draws) > 5

    def test_accepts_region_manifest(self):
        from models import GeoPoint, RegionManifest
        import datetime
        manifest = RegionManifest(
            regionKey="r25:0:0", manifestId="m", location="x", center=GeoPoint(lat=0.125, lon=0.125),
            animalManifest=MANIFEST, createdAt=datetime.datetime(2025, 1, 1),
        )
        assert ChallengeSampler().sample(manifest, "daily", seed=7) == ChallengeSampler().sample(MANIFEST, "daily", seed=7)


class TestRarity:
    def test_rare_and_common_animals_both_appear(self):
        sampler = ChallengeSampler()
        seen = set()
        for seed in range(300):
            seen |= {t.animalName for t in sampler.sample(MANIFEST, "daily", seed=seed)}
        assert seen & RARE
        assert seen & COMMON

    def test_rare_slots_raise_rare_share(self):
        def rare_share(policy):
            sampler = ChallengeSampler(policies={"daily": policy})
            picks = [t.animalName for s in range(400) for t in sampler.sample(MANIFEST, "daily", seed=s)]
            return sum(1 for name in picks if name in RARE) / len(picks)

        without = rare_share(DrawPolicy(count=3, rare_slots=0, max_required=2))
        always = rare_share(DrawPolicy(count=3, rare_slots=1, rare_slot_chance=1.0, max_required=2))
        assert always > without
        assert always >= 1 / 3

    def test_selection_weight_floor(self):
        sampler = ChallengeSampler()
        assert sampler.selection_weight(ManifestEntry(name="Bobcat", probability=1)) == 10
        assert sampler.selection_weight(ManifestEntry(name="Deer", probability=70)) == 70

    def test_zero_settings_are_kept(self):
        sampler = ChallengeSampler(rarity_floor=0, rare_threshold=0, common_threshold=0, min_probability=0)
        assert (sampler.rarity_floor, sampler.rare_threshold, sampler.common_threshold) == (0, 0, 0)
        assert sampler.selection_weight(ManifestEntry(name="Snow Leopard", probability=0)) == 0
        assert sampler.required_count(5, DEFAULT_POLICIES["weekly"]) == 3

    def test_zero_weight_drawn_last(self):
        weights = {"Snow Leopard": 0, "Bobcat": 5, "Coyote": 12}
        for seed in range(50):
            picked = weighted_sample(list(weights), 2, weights.get, random.Random(seed))
            assert sorted(picked) == ["Bobcat", "Coyote"]
        assert len(weighted_sample(list(weights), 3, weights.get, random.Random(1))) == 3


class TestRequiredCount:
    @pytest.mark.parametrize("probability,daily,weekly", [
        (1, 1, 1),
        (14, 1, 1),
        (15, 2, 2),
        (49, 2, 2),
        (50, 2, 3),
        (100, 2, 3),
    ])
    def test_thresholds_and_caps(self, probability, daily, weekly):
        sampler = ChallengeSampler()
        assert sampler.required_count(probability, DEFAULT_POLICIES["daily"]) == daily
        assert sampler.required_count(probability, DEFAULT_POLICIES["weekly"]) == weekly


class TestMastered:
    def test_included_by_default(self):
        sampler = ChallengeSampler(exclude_mastered=False)
        pool = sampler.candidates(MANIFEST, already_mastered={"bobcat"})
        assert "Bobcat" in {e.name for e in pool}

    def test_excluded_when_policy_on(self):
        sampler = ChallengeSampler(exclude_mastered=True)
        mastered = {"Bobcat", "northern cardinal"}
        for seed in range(100):
            names = {t.animalName for t in sampler.sample(MANIFEST, "weekly", mastered, seed=seed)}
            assert not names & {"Bobcat", "Northern Cardinal"}


def test_unknown_kind():
    with pytest.raises(UnknownChallengeKind):
        ChallengeSampler().sample(MANIFEST, "monthly", seed=1)


def test_weighted_sample_without_replacement():
    items = list(range(10))
    picked = weighted_sample(items, 10, lambda i: i + 1, random.Random(4))
    assert sorted(picked) == items
