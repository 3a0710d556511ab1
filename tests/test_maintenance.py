import argparse
import datetime

import pytest

from maintenance.manifest_admin import build_parser, run_command
from maintenance.recalculate_challenge_xp import backfill_xp_potential
from conftest import AUSTIN, AUSTIN_KEY, make_section, put_user_challenge


class TestBackfillXPPotential:
    def test_fills_only_missing_values(self, db, clock):
        now = clock()
        later = now + datetime.timedelta(hours=5)
        put_user_challenge(db, 'u1', AUSTIN_KEY,
                           daily=make_section([("Bobcat", 5, 1)], now, later),
                           weekly=make_section([("Bobcat", 5, 1)], now, later, xpPotential=999),
                           now=now)
        put_user_challenge(db, 'u2', AUSTIN_KEY, daily=make_section([], now, later), now=now)

        assert backfill_xp_potential(db) == 1
        record = db.read('userChallenges', f'u1__{AUSTIN_KEY}')
        assert record['daily']['xpPotential'] == 190
        assert record['weekly']['xpPotential'] == 999
        assert backfill_xp_potential(db) == 0

    def test_dry_run_writes_nothing(self, db, clock):
        now = clock()
        put_user_challenge(db, 'u1', AUSTIN_KEY, daily=make_section([("Bobcat", 5, 1)], now, now), now=now)
        writes = db.write_count
        assert backfill_xp_potential(db, dry_run=True) == 1
        assert db.write_count == writes


class TestManifestAdmin:
    def test_list_regenerate_delete(self, service, generator):
        parser = build_parser()
        service.get_manifest(*AUSTIN)

        lines = run_command(service, parser.parse_args(['list']))
        assert lines[-1] == "1 manifest(s)."
        assert lines[0].startswith(AUSTIN_KEY)

        lines = run_command(service, parser.parse_args(['regenerate', '--lat', str(AUSTIN[0]), '--lng', str(AUSTIN[1])]))
        assert lines[0].startswith(f"Regenerated {AUSTIN_KEY}")
        assert generator.call_count == 2

        assert run_command(service, parser.parse_args(['delete', AUSTIN_KEY])) == [f"Deleted manifest {AUSTIN_KEY}."]
        assert run_command(service, parser.parse_args(['delete', AUSTIN_KEY])) == [f"No manifest found for {AUSTIN_KEY}."]

    def test_clear_all_needs_confirmation(self, service):
        service.get_manifest(*AUSTIN)
        parser = build_parser()
        assert run_command(service, parser.parse_args(['clear-all']))[0].startswith("Refusing")
        assert run_command(service, parser.parse_args(['clear-all', '--yes'])) == ["Deleted 1 manifest(s)."]

    def test_unknown_command(self, service):
        with pytest.raises(ValueError, match="explode"):
            run_command(service, argparse.Namespace(command="explode"))
