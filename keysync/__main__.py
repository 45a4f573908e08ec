"""
keysync CLI - Run with: python -m keysync

Commands:
    apply     - Reconcile a declaration document and print it refreshed
    read      - Refresh a declaration document from the remote store
    import    - Print every remote managed key as a declaration document
    destroy   - Delete every remote key of the declared families
"""

import json
import sys

from pydantic import ValidationError

from keysync.config import get_settings
from keysync.errors import ManagedKeyError
from keysync.logging import setup_logging
from keysync.models import Snapshot
from keysync.reconciler import Reconciler
from keysync.store import close_remote_store, get_remote_store
from keysync.version import ServerVersionGate


class UsageError(Exception):
    pass


def load_document(path: str | None) -> Snapshot:
    """Load a declaration document; a missing path means an empty one."""
    if not path:
        return Snapshot()
    if path == "-":
        return Snapshot.from_document(json.load(sys.stdin))
    with open(path, "r", encoding="utf-8") as f:
        return Snapshot.from_document(json.load(f))


def build_reconciler() -> Reconciler:
    settings = get_settings()
    setup_logging(json_output=settings.log_json, level=settings.log_level)
    store = get_remote_store()
    gate = ServerVersionGate(settings.vault_version or store.server_version())
    return Reconciler(store, is_feature_available=gate)


def print_document(blocks_by_family) -> None:
    print(json.dumps(Snapshot.from_blocks(blocks_by_family).to_document(), indent=2, sort_keys=True))


def cmd_apply(args: list[str]) -> int:
    """Reconcile NEW against OLD and print the refreshed declaration."""
    fresh = "--fresh" in args
    args = [a for a in args if a != "--fresh"]
    old_path = None
    if "--old" in args:
        i = args.index("--old")
        if i + 1 >= len(args):
            raise UsageError("--old requires a path")
        old_path = args[i + 1]
        del args[i:i + 2]
    if len(args) != 1:
        raise UsageError("apply takes exactly one declaration document")

    new = load_document(args[0])
    old = load_document(old_path)
    outcome = build_reconciler().apply(old, new, is_fresh=fresh)
    for result in outcome.results:
        print(result.summary(), file=sys.stderr)
    print_document(outcome.state)
    return 0


def cmd_read(args: list[str]) -> int:
    """Print the refreshed declaration."""
    if len(args) != 1:
        raise UsageError("read takes exactly one declaration document")
    declared = load_document(args[0])
    reconciler = build_reconciler()
    print_document(reconciler.read_all(declared.families() or None, declared))
    for notice in reconciler.drift_reporter.notices:
        print(f"drift: {notice.summary()}", file=sys.stderr)
    return 0


def cmd_import(args: list[str]) -> int:
    """Print all remote managed keys."""
    if args:
        raise UsageError("import takes no arguments")
    print_document(build_reconciler().import_state())
    return 0


def cmd_destroy(args: list[str]) -> int:
    """Delete all remote keys of the declared families."""
    if len(args) != 1:
        raise UsageError("destroy takes exactly one declaration document")
    declared = load_document(args[0])
    deleted = build_reconciler().destroy(declared.families())
    for family, names in deleted.items():
        print(f"{family.value}: deleted {len(names)}")
    return 0


def cmd_help(args: list[str] | None = None) -> int:
    """Show help."""
    print(__doc__)
    print("Usage: python -m keysync <command> [args]\n")
    print("Commands:")
    print("  apply NEW [--old OLD] [--fresh]   Reconcile NEW (OLD is the previous declaration)")
    print("  read DECLARED                     Print DECLARED refreshed from the remote")
    print("  import                            Print all remote managed keys")
    print("  destroy DECLARED                  Delete remote keys of the declared families")
    print("  help                              Show this help message")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        cmd_help()
        return 0

    command = argv[0].lower()

    commands = {
        "apply": cmd_apply,
        "read": cmd_read,
        "import": cmd_import,
        "destroy": cmd_destroy,
        "help": cmd_help,
        "--help": cmd_help,
        "-h": cmd_help,
    }

    if command not in commands:
        print(f"Unknown command: {command}")
        cmd_help()
        return 2

    try:
        return commands[command](argv[1:])
    except UsageError as e:
        print(f"Usage error: {e}", file=sys.stderr)
        return 2
    except (OSError, json.JSONDecodeError) as e:
        print(f"Could not load declaration: {e}", file=sys.stderr)
        return 2
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    except ManagedKeyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        close_remote_store()


if __name__ == "__main__":
    sys.exit(main())
