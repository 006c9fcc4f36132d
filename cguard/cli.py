#!/usr/bin/env python3
"""
cguard CLI - propagate allocation failures in C code.

Commands:
- fix: rewrite functions so unchecked allocations return an error code
- audit: count checked and unchecked allocations
- decl: explain a C declaration (spiral rule)

Usage:
    cguard fix src/util.c                   # print the rewritten file
    cguard fix src/util.c -o util.fixed.c   # write it elsewhere
    cguard fix src/ --in-place              # rewrite every .c file
    cguard audit src/ --format json
    cguard decl "int *(*f)(int)"
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from cguard import __version__
from cguard.errors import CguardError


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser"""
    parser = argparse.ArgumentParser(
        prog="cguard",
        description="cguard - Allocation failure propagation for C",
        epilog="Use 'cguard <command> --help' for more information on a specific command.",
    )

    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # === FIX command ===
    fix_parser = subparsers.add_parser(
        "fix",
        help="Rewrite C sources to check and propagate allocation failures",
        description="Inject allocation guards and convert functions to return error codes.",
    )
    fix_parser.add_argument(
        "target",
        help="C file or directory"
    )
    destination = fix_parser.add_mutually_exclusive_group()
    destination.add_argument(
        "--in-place",
        action="store_true",
        help="Overwrite the input file(s)"
    )
    destination.add_argument(
        "-o", "--output",
        help="Write the rewritten file here (single file only)"
    )
    fix_parser.add_argument(
        "--error-code",
        help="Code returned when an allocation fails (default: ENOMEM)"
    )
    fix_parser.add_argument(
        "--status-var",
        help="Local variable capturing callee status (default: rc)"
    )
    fix_parser.add_argument(
        "--out-param",
        help="Name of the appended out-parameter (default: out)"
    )
    fix_parser.add_argument(
        "--check-window",
        type=int,
        help="Tokens searched around negative-return checks (default: 32)"
    )
    fix_parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Verbose output (-vv for debug)"
    )

    # === AUDIT command ===
    audit_parser = subparsers.add_parser(
        "audit",
        help="Report checked and unchecked allocations",
        description="Count allocation sites in C sources without modifying them.",
    )
    audit_parser.add_argument(
        "paths",
        nargs="+",
        help="C files or directories"
    )
    audit_parser.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )
    audit_parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Verbose output (-vv for debug)"
    )

    # === DECL command ===
    decl_parser = subparsers.add_parser(
        "decl",
        help="Explain a C declaration",
        description="Parse a declaration with the spiral rule and print its type chain.",
    )
    decl_parser.add_argument(
        "declaration",
        help="Declaration to parse, e.g. 'char *(*fp)(int)'"
    )
    decl_parser.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )

    return parser


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# ============================================================================
# FIX Command
# ============================================================================

def cmd_fix(args) -> int:
    """Execute fix command"""
    from cguard.config import RewriteConfig
    from cguard.refactor.orchestrator import refactor_source
    from cguard.sources import is_c_source, iter_c_files, read_source, write_source

    try:
        config = RewriteConfig.from_env().override(
            error_code=args.error_code,
            status_var=args.status_var,
            out_param=args.out_param,
            check_window=args.check_window,
        )
    except CguardError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    target = Path(args.target)
    if target.is_dir():
        if not args.in_place:
            print("Error: directories can only be fixed with --in-place", file=sys.stderr)
            return 2
    elif not target.exists():
        print(f"Error: no such file: {target}", file=sys.stderr)
        return 2
    elif not is_c_source(target):
        print(f"Error: not a C source file: {target}", file=sys.stderr)
        return 2

    failures = 0
    changed = 0
    for path in iter_c_files([target]):
        try:
            result = refactor_source(read_source(path), config=config)
            if args.in_place:
                if result.changed:
                    write_source(path, result.output)
                    changed += 1
            elif args.output:
                write_source(args.output, result.output)
            else:
                sys.stdout.write(result.output)
        except CguardError as e:
            print(f"Error: {path}: {e}", file=sys.stderr)
            failures += 1
            continue
        except ImportError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

        if args.verbose and result.refactored:
            names = ", ".join(result.refactored.names())
            print(f"{path}: refactored {names}", file=sys.stderr)

    if args.in_place and args.verbose:
        print(f"{changed} file(s) changed", file=sys.stderr)
    return 2 if failures else 0


# ============================================================================
# AUDIT Command
# ============================================================================

def cmd_audit(args) -> int:
    """Execute audit command"""
    from cguard.analysis.audit import audit_paths

    try:
        stats = audit_paths(args.paths)
    except CguardError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.format == "json":
        print(json.dumps(stats.to_dict(), indent=2))
    else:
        print(f"Files scanned:              {stats.files_scanned}")
        print(f"Allocations checked:        {stats.allocations_checked}")
        print(f"Allocations unchecked:      {stats.allocations_unchecked}")
        print(f"  used before check:        {stats.used_before_check}")
        print(f"Functions returning alloc:  {stats.functions_returning_alloc}")

    return 1 if stats.allocations_unchecked else 0


# ============================================================================
# DECL Command
# ============================================================================

def cmd_decl(args) -> int:
    """Execute decl command - parse and display a declaration"""
    from cguard.core.declarator import parse_decl

    try:
        info = parse_decl(args.declaration)
    except CguardError as e:
        print(f"Parse error: {e}", file=sys.stderr)
        return 2

    if args.format == "json":
        print(json.dumps(info.to_dict(), indent=2))
    else:
        print(info.describe())
    return 0


def main(argv: List[str] = None) -> int:
    """Main CLI entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(getattr(args, "verbose", 0))

    # Dispatch to command handler
    commands = {
        "fix": cmd_fix,
        "audit": cmd_audit,
        "decl": cmd_decl,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
