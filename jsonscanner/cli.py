"""
Command-line interface for the JSON scanner.

Runs single scan cycles or the autorun loop, lists the loaded rules and
manages configuration and temp sessions.
"""

import argparse
import sys
import os
import time
from typing import Optional, List

from jsonscanner import __version__
from jsonscanner.config import ScanConfig, load_scan_config, create_default_config, CONFIG_FILE_NAMES
from jsonscanner.core.engine import CycleReport, ScanEngine
from jsonscanner.core.rules import RuleEngine
from jsonscanner.core.staging import DEFAULT_MAX_SESSION_AGE_HOURS, TempFileManager
from jsonscanner.errors import ConfigError, JsonScannerError
from jsonscanner.formatters import get_formatter
from jsonscanner.logging_setup import configure_logging


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="jsonscanner",
        description="Quality checks for CAM JSON descriptors and NC programs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  jsonscanner scan ./exports                   # One scan cycle
  jsonscanner scan ./exports --auto            # Keep scanning every interval
  jsonscanner scan . --format json -o out.json # JSON report to a file
  jsonscanner scan . --force                   # Reprocess unchanged files
  jsonscanner list-rules                       # Show loaded rules
  jsonscanner init                             # Create config file
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Scan command
    scan_parser = subparsers.add_parser("scan", help="Scan a directory for CAM projects")
    scan_parser.add_argument(
        "target",
        nargs="?",
        help="Directory to scan (default: configured scan path, else current directory)",
    )
    scan_parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
    )
    scan_parser.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default=None,
        help="Output format (default: text)",
    )
    scan_parser.add_argument(
        "-o", "--output",
        help="Output file (default: stdout)",
    )
    scan_parser.add_argument(
        "--force",
        action="store_true",
        help="Reprocess projects even when their files are unchanged",
    )
    scan_parser.add_argument(
        "--clear-errors",
        action="store_true",
        help="Clear fatal error markers before scanning",
    )
    mode = scan_parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--auto",
        dest="autorun",
        action="store_true",
        default=None,
        help="Scan repeatedly every scan interval until interrupted",
    )
    mode.add_argument(
        "--manual",
        dest="autorun",
        action="store_false",
        help="Run a single scan cycle",
    )
    scan_parser.add_argument(
        "--test",
        action="store_true",
        help="Use the configured test scan path",
    )
    scan_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output and debug logging",
    )
    scan_parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    # Init command
    init_parser = subparsers.add_parser("init", help="Create a configuration file")
    init_parser.add_argument(
        "-f", "--force",
        action="store_true",
        help="Overwrite existing config file",
    )

    # List-rules command
    rules_parser = subparsers.add_parser("list-rules", help="List loaded rules")
    rules_parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
    )
    rules_parser.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    # Changes command
    changes_parser = subparsers.add_parser("changes", help="Stage a path and report changed files")
    changes_parser.add_argument(
        "target",
        help="File or directory to watch",
    )
    changes_parser.add_argument(
        "--wait",
        type=float,
        default=0.0,
        help="Seconds to wait between staging and change detection",
    )
    changes_parser.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    changes_parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
    )

    # Cleanup-sessions command
    cleanup_parser = subparsers.add_parser("cleanup-sessions", help="Remove old temp sessions")
    cleanup_parser.add_argument(
        "--max-age-hours",
        type=float,
        default=DEFAULT_MAX_SESSION_AGE_HOURS,
        help=f"Remove sessions older than this (default: {DEFAULT_MAX_SESSION_AGE_HOURS})",
    )
    cleanup_parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
    )

    return parser


def _load_config(args: argparse.Namespace) -> ScanConfig:
    start_dir = getattr(args, "target", None) or "."
    if not os.path.isdir(start_dir):
        start_dir = os.path.dirname(os.path.abspath(start_dir))
    return load_scan_config(getattr(args, "config", None), start_dir=start_dir)


def _write_output(output: str, output_file: Optional[str]) -> None:
    if output_file:
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(output)
    else:
        print(output)


def cmd_scan(args: argparse.Namespace) -> int:
    """Execute the scan command."""
    config = _load_config(args)

    # Apply command-line overrides
    if args.autorun is not None:
        config.autorun = args.autorun
    if args.test:
        config.test_mode = True
    if args.force:
        config.force_reprocess = True
    if args.format:
        config.output.format = args.format
    if args.output:
        config.output.output_file = args.output
    if args.verbose:
        config.output.verbose = True
        config.log_level = "debug"
    if args.no_color:
        config.output.color = False

    configure_logging(config.log_level, config.log_file, color=config.output.color)

    target = args.target or config.active_scan_path() or "."
    TempFileManager.cleanup_old_sessions(config.temp_root)

    engine = ScanEngine(config)
    if args.clear_errors:
        engine.scanner.clear_fatal_errors()

    formatter = get_formatter(config.output.format, use_color=config.output.color, verbose=config.output.verbose)

    def report_cycle(report: CycleReport) -> None:
        _write_output(formatter.format_result(report), config.output.output_file)

    try:
        report = engine.run_autorun(target, on_cycle=report_cycle)
    except KeyboardInterrupt:
        engine.stop()
        raise

    if report is not None and report.has_failures:
        return 1
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Execute the init command."""
    config_file = CONFIG_FILE_NAMES[0]

    if os.path.exists(config_file) and not args.force:
        print(f"Configuration file {config_file} already exists.")
        print("Use --force to overwrite.")
        return 1

    content = create_default_config()

    with open(config_file, 'w', encoding='utf-8') as f:
        f.write(content)

    print(f"Created configuration file: {config_file}")
    return 0


def cmd_list_rules(args: argparse.Namespace) -> int:
    """Execute the list-rules command."""
    config = _load_config(args)
    configure_logging("warning", color=False)

    engine = RuleEngine(config)
    formatter = get_formatter(args.format)
    print(formatter.format_rules(engine.get_rules_info()))

    for rule_name, error in sorted(engine.load_errors.items()):
        print(f"Failed to load {rule_name}: {error}", file=sys.stderr)

    return 0


def cmd_changes(args: argparse.Namespace) -> int:
    """Execute the changes command."""
    config = _load_config(args)
    configure_logging("warning", color=False)

    target = os.path.abspath(args.target)
    base_path = target if os.path.isdir(target) else os.path.dirname(target)

    manager = TempFileManager(config.temp_root)
    try:
        manager.copy_to_temp(target, base_path)
        if args.wait > 0:
            time.sleep(args.wait)
        changes = manager.detect_changes()
        # Files created since staging show up as new
        if os.path.isdir(target):
            present = []
            for dirpath, _, filenames in os.walk(target):
                present.extend(os.path.join(dirpath, name) for name in filenames)
            changes.new_files.extend(sorted(p for p in present if not manager.is_tracked(p)))
    finally:
        manager.cleanup()

    print(get_formatter(args.format).format_changes(changes))
    return 0


def cmd_cleanup_sessions(args: argparse.Namespace) -> int:
    """Execute the cleanup-sessions command."""
    config = _load_config(args)
    configure_logging(config.log_level, config.log_file, color=False)

    removed = TempFileManager.cleanup_old_sessions(config.temp_root, args.max_age_hours)
    print(f"Removed {len(removed)} old session(s).")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "scan":
            return cmd_scan(args)
        elif args.command == "init":
            return cmd_init(args)
        elif args.command == "list-rules":
            return cmd_list_rules(args)
        elif args.command == "changes":
            return cmd_changes(args)
        elif args.command == "cleanup-sessions":
            return cmd_cleanup_sessions(args)
        else:
            parser.print_help()
            return 0

    except KeyboardInterrupt:
        print("\nScan interrupted.")
        return 130
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except (JsonScannerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        if os.environ.get("DEBUG"):
            raise
        return 1


if __name__ == "__main__":
    sys.exit(main())
