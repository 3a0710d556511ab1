import os
import sys
import logging
import argparse
import datetime
from dotenv import load_dotenv

# --- SETUP & CONFIG ---
# This allows the script to find other modules like logging_config
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from logging_config import setup_logging
from dependencies import ServiceRegistry

LOCK_KEY = "lock:manifest_admin"


def run_command(service, args):
    """Executes one CLI command against a ChallengeService and returns the lines to print."""
    if args.command == 'list':
        summaries = service.list_manifests(args.limit)
        lines = [f"{s.regionKey}\t{s.location}\t{s.manifestSize} animals\t{s.highProbabilityCount} likely\t{s.createdAt}"
                 for s in summaries]
        return lines + [f"{len(summaries)} manifest(s)."]
    if args.command == 'regenerate':
        manifest = service.regenerate_manifest(args.lat, args.lng)
        return [f"Regenerated {manifest.regionKey} ({manifest.location}) with {len(manifest.animalManifest)} animals."]
    if args.command == 'delete':
        if service.delete_manifest(args.region_key):
            return [f"Deleted manifest {args.region_key}."]
        return [f"No manifest found for {args.region_key}."]
    if args.command == 'clear-all':
        if not args.yes:
            return ["Refusing to clear all manifests without --yes."]
        return [f"Deleted {service.clear_manifests()} manifest(s)."]
    raise ValueError(f"Unknown command: {args.command}")


def build_parser():
    parser = argparse.ArgumentParser(description='Manage SpotItNow regional probability manifests.')
    sub = parser.add_subparsers(dest='command', required=True)

    list_cmd = sub.add_parser('list', help='List stored manifests, newest first.')
    list_cmd.add_argument('--limit', type=int, default=None)

    regen_cmd = sub.add_parser('regenerate', help='Regenerate the manifest for the region containing a point.')
    regen_cmd.add_argument('--lat', type=float, required=True)
    regen_cmd.add_argument('--lng', type=float, required=True)

    delete_cmd = sub.add_parser('delete', help='Delete one manifest by region key.')
    delete_cmd.add_argument('region_key')

    clear_cmd = sub.add_parser('clear-all', help='Delete every manifest.')
    clear_cmd.add_argument('--yes', action='store_true')
    return parser


if __name__ == '__main__':
    load_dotenv()
    setup_logging()
    args = build_parser().parse_args()

    registry = ServiceRegistry.from_env()
    redis_client = registry.redis_client
    if not redis_client:
        logging.critical("FATAL: Redis is required for the manifest admin lock.")
        sys.exit(1)

    # nx=True means set only if the key does not exist. ex=600 means expire after 10 minutes.
    if not redis_client.set(LOCK_KEY, "running", ex=600, nx=True):
        print(f"[{datetime.datetime.now()}] Another manifest admin command is in progress. Exiting.")
        logging.warning("Manifest admin command already in progress. Exiting.")
        sys.exit(1)

    try:
        for line in run_command(registry.challenge_service, args):
            print(line)
    except Exception as e:
        logging.error(f"Manifest admin command '{args.command}' failed: {e}", exc_info=True)
        print(f"ERROR: {e}")
        sys.exit(1)
    finally:
        # Always release the lock when done
        redis_client.delete(LOCK_KEY)
        registry.close()
