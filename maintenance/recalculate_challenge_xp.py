import os
import sys
import logging
import argparse
from google.cloud import firestore
from dotenv import load_dotenv

# --- SETUP & CONFIG ---
# This allows the script to find other modules like logging_config
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from logging_config import setup_logging
from challenge_config import ChallengeConfig
from models import ChallengeTask
from xp_awarder import compute_xp_potential


def backfill_xp_potential(db, collection='userChallenges', dry_run=False):
    """
    Sets xpPotential on every daily/weekly section that was stored with 0 (records written
    before XP was computed at issue time). xpAwarded is left alone.

    Returns the number of sections updated.
    """
    logging.info("Starting challenge XP backfill...")
    batch = db.batch()
    updated = 0
    pending = 0

    for doc in db.collection(collection).stream():
        data = doc.to_dict() or {}
        changes = {}
        for kind in ChallengeConfig.CHALLENGE_KINDS:
            section = data.get(kind)
            if not section or section.get('xpPotential') or not section.get('animals'):
                continue
            tasks = [ChallengeTask.model_validate(a) for a in section['animals']]
            changes[f'{kind}.xpPotential'] = compute_xp_potential(tasks)
        if not changes:
            continue

        logging.info(f"{doc.id}: {changes}")
        updated += len(changes)
        if dry_run:
            continue
        batch.update(doc.reference, changes)
        pending += 1

        # Commit every 500 documents and start a new batch
        if pending == ChallengeConfig.FIRESTORE_BATCH_SIZE:
            batch.commit()
            batch = db.batch()
            pending = 0

    if pending:
        batch.commit()
    logging.info(f"XP backfill complete: {updated} section(s) {'would be ' if dry_run else ''}updated.")
    return updated


# This makes the script runnable from the command line
if __name__ == '__main__':
    load_dotenv()
    setup_logging()
    parser = argparse.ArgumentParser(description='Backfill xpPotential on stored regional challenges.')
    parser.add_argument('--dry-run', action='store_true', help='Log the changes without writing them.')
    args = parser.parse_args()

    try:
        db = firestore.Client()
        count = backfill_xp_potential(db, dry_run=args.dry_run)
        print(f"Success: {count} challenge section(s) {'need' if args.dry_run else 'received'} an XP value.")
    except Exception as e:
        logging.error(f"An error occurred during the XP backfill: {e}", exc_info=True)
        print("Failure: An error occurred. Check the log file for details.")
        sys.exit(1)
