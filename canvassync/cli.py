#!/usr/bin/env python3
"""
canvassync - Live two-way sync between a local folder and a design canvas
==========================================================================

Subcommands:
  serve     Wait for the canvas to connect and keep the project in sync.
  port      Show the short project id and the port a project listens on.
  status    Show the files tracked in a project's sync baseline.

Run 'canvassync <subcommand> --help' for more details.
"""
import sys
import argparse
from pathlib import Path


def _load_config(verbose: bool = False):
    """Apply the global config file, then the verbose flag."""
    from canvassync import config as _cfg
    from canvassync.utils.logging import set_verbose

    _cfg.apply_profile(_cfg.get_profile(_cfg.load_global_config()))
    set_verbose(verbose or _cfg.VERBOSE)


# ── serve ────────────────────────────────────────────────────────────────────

def cmd_serve(args):
    """Serve one project until interrupted."""
    import asyncio
    from canvassync.config import Settings
    from canvassync.core.connection import PortInUseError
    from canvassync.core.sync_engine import run
    from canvassync.utils.project import get_project_hash_from_cwd

    _load_config(args.verbose)

    project_hash = args.project_id or get_project_hash_from_cwd()
    if not project_hash:
        print("error: no project id given and no package.json with a project id here.", file=sys.stderr)
        print("Run 'canvassync serve <PROJECT_ID>'.", file=sys.stderr)
        sys.exit(1)

    settings = Settings(
        project_hash=project_hash,
        project_name=args.name,
        explicit_dir=Path(args.dir) if args.dir else None,
        host=args.host,
        dangerously_auto_delete=True if args.dangerously_auto_delete else None,
        verbose=args.verbose,
    )

    try:
        asyncio.run(run(settings))
    except PortInUseError:
        sys.exit(1)
    except KeyboardInterrupt:
        print()


# ── port ─────────────────────────────────────────────────────────────────────

def cmd_port(args):
    """Print the short id and port for a project id."""
    from canvassync.utils.hashing import port_from_hash, short_project_hash

    print(f"Project : {short_project_hash(args.project_id)}")
    print(f"Port    : {port_from_hash(args.project_id)}")


# ── status ───────────────────────────────────────────────────────────────────

def cmd_status(args):
    """Show the baseline of a synced project directory."""
    import canvassync.config as _cfg
    from canvassync.state.state_manager import get_state_file, load_state
    from canvassync.utils.project import get_project_hash_from_cwd

    _load_config(args.verbose)

    project_dir = Path(args.dir).expanduser().resolve() if args.dir else Path.cwd()
    short_id = get_project_hash_from_cwd(project_dir)
    state_file = get_state_file(project_dir)

    print(f"\nProject : {short_id or '(no package.json)'}")
    print(f"Folder  : {project_dir}")
    print(f"Files   : {project_dir / _cfg.FILES_DIR_NAME}")

    if not state_file.exists():
        print("\nNo sync state yet. Run 'canvassync serve' to sync this folder.")
        return

    state = load_state(project_dir)
    print(f"Tracked : {len(state)} file(s)")
    if args.verbose:
        for name in sorted(state):
            print(f"  {name}  {state[name].content_hash[:12]}")


# ── main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    """CLI entry point for canvassync"""
    parser = argparse.ArgumentParser(
        prog="canvassync",
        description="Live two-way sync between a local folder and a design canvas",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # ── serve ─────────────────────────────────────────────────────────────────
    serve_p = subparsers.add_parser(
        "serve",
        help="Wait for the canvas and keep the project in sync",
        description="Listen for the canvas on the project's port and sync its files.",
    )
    serve_p.add_argument("project_id", nargs="?", metavar="PROJECT_ID",
                         help="Project id (default: read from ./package.json)")
    serve_p.add_argument("-n", "--name", metavar="NAME",
                         help="Project name used for a new folder (default: from the canvas)")
    serve_p.add_argument("-d", "--dir", metavar="PATH",
                         help="Project folder to sync into (default: found or created here)")
    serve_p.add_argument("-v", "--verbose", action="store_true",
                         help="Show every file and protocol message")
    serve_p.add_argument("--dangerously-auto-delete", action="store_true",
                         help="Delete on the canvas without asking for confirmation")
    serve_p.add_argument("--host", metavar="HOST",
                         help="Address to listen on (default: 127.0.0.1)")

    # ── port ──────────────────────────────────────────────────────────────────
    port_p = subparsers.add_parser(
        "port",
        help="Show the short id and port for a project",
        description="Show the short project id and the port canvassync listens on for it.",
    )
    port_p.add_argument("project_id", metavar="PROJECT_ID", help="Full or short project id")

    # ── status ────────────────────────────────────────────────────────────────
    status_p = subparsers.add_parser(
        "status",
        help="Show files tracked in the sync baseline",
        description="Show the sync baseline of a project folder.",
    )
    status_p.add_argument("-d", "--dir", metavar="PATH",
                          help="Project folder (default: current directory)")
    status_p.add_argument("-v", "--verbose", action="store_true",
                          help="List every tracked file")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "port":
        cmd_port(args)
    elif args.command == "status":
        cmd_status(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
