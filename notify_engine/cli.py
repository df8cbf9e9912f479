#!/usr/bin/env python3
"""
Notification Engine Command Line Interface

Main entry point for the `notify-engine` command.

Usage:
    notify-engine limits                          # Effective rate limit table
    notify-engine check --user alice --action comment --count 12
    notify-engine quiet-hours --start 22:00 --end 07:00
    notify-engine prefs show                      # Stored preferences as JSON
    notify-engine prefs preset balanced           # Replace preferences with a preset
    notify-engine --version
"""

import argparse
import json
import sys
from datetime import datetime, time


def cmd_version(args):
    from notify_engine import __version__

    print(f"notify-engine {__version__}")


def cmd_limits(args):
    """Print the rate limit table after config overrides."""
    from notify_engine.config import describe_limits, load_engine_config

    table = describe_limits(load_engine_config())

    if args.json:
        print(json.dumps(table, indent=2))
        return

    print(f"{'action':<16}{'minutely':>10}{'hourly':>10}{'daily':>10}{'weekly':>10}")
    for action, limits in table.items():
        cells = ["-" if limits[k] is None else str(limits[k]) for k in ("minutely", "hourly", "daily", "weekly")]
        print(f"{action:<16}" + "".join(f"{c:>10}" for c in cells))


def cmd_check(args):
    """Run repeated check_limit calls against a fresh limiter."""
    from notify_engine.config import load_engine_config
    from notify_engine.errors import NotifyEngineError, RateLimitExceeded
    from notify_engine.ratelimit.actions import RateLimitAction, build_limit_table
    from notify_engine.ratelimit.limiter import RateLimiter

    try:
        action = RateLimitAction(args.action)
    except ValueError:
        valid = ", ".join(a.value for a in RateLimitAction)
        print(f"Unknown action '{args.action}'. Valid actions: {valid}")
        return 2

    config = load_engine_config()
    limiter = RateLimiter(limits=build_limit_table(config.rate_limiter.limit_overrides()))

    admitted = 0
    for attempt in range(1, args.count + 1):
        try:
            limiter.check_limit(action, args.user)
            admitted += 1
        except RateLimitExceeded as e:
            print(f"Attempt {attempt}: {e} (resets at {e.reset_time.isoformat(timespec='seconds')})")
            break
        except NotifyEngineError as e:
            print(f"Error: {e}")
            return 1

    print(f"Admitted {admitted} of {args.count} {action.value} action(s) for {args.user}")
    print(f"Remaining: {limiter.get_remaining_actions(action, args.user)}")
    return 0 if admitted == args.count else 1


def cmd_quiet_hours(args):
    """Show the hour-by-hour send schedule for a quiet-hours window."""
    from notify_engine.notifications.preferences import NotificationPreferences
    from notify_engine.notifications.quiet_hours import get_send_schedule, next_quiet_hours_end

    prefs = NotificationPreferences(
        quiet_hours_enabled=True,
        quiet_hours_start=time.fromisoformat(args.start),
        quiet_hours_end=time.fromisoformat(args.end),
    )
    now = datetime.now().replace(minute=0, second=0, microsecond=0)

    for slot in get_send_schedule(prefs, now, hours_ahead=args.hours):
        marker = "quiet" if slot["quiet_hours"] else "send"
        print(f"{slot['time']}  {marker}")

    if prefs.is_in_quiet_hours(datetime.now()):
        print(f"Quiet hours active; deferred notifications go out at "
              f"{next_quiet_hours_end(prefs, datetime.now()).isoformat(timespec='minutes')}")


def cmd_prefs(args):
    """Show or replace stored notification preferences."""
    from notify_engine.config import load_engine_config
    from notify_engine.notifications.preferences import PRESETS, SqlitePreferenceStore

    storage = load_engine_config().storage
    store = SqlitePreferenceStore(storage.preferences_path, profile=storage.profile)

    if args.prefs_command == "show":
        print(json.dumps(store.load().to_dict(), indent=2))
        return

    if args.prefs_command == "preset":
        factory = PRESETS.get(args.name)
        if factory is None:
            print(f"Unknown preset '{args.name}'. Available: {', '.join(PRESETS)}")
            return 2
        store.save(factory())
        print(f"Preferences for profile '{storage.profile}' set to preset '{args.name}'")
        return

    print("Usage: notify-engine prefs {show,preset NAME}")
    return 2


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="notify-engine",
        description="Rate-limited notification admission and delivery engine",
    )
    parser.add_argument(
        "--version", "-V", action="store_true", help="Show version and exit"
    )
    parser.add_argument(
        "--log-level", default="WARNING", help="Engine log level on stderr (default: WARNING)"
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # limits
    limits_parser = subparsers.add_parser("limits", help="Print the rate limit table")
    limits_parser.add_argument("--json", action="store_true", help="Output as JSON")
    limits_parser.set_defaults(func=cmd_limits)

    # check
    check_parser = subparsers.add_parser(
        "check", help="Exercise the rate limiter for one user and action"
    )
    check_parser.add_argument("--user", required=True, help="Subject (user) ID")
    check_parser.add_argument("--action", required=True, help="Action, e.g. comment, follow")
    check_parser.add_argument(
        "--count", type=int, default=1, help="Number of attempts (default: 1)"
    )
    check_parser.set_defaults(func=cmd_check)

    # quiet-hours
    quiet_parser = subparsers.add_parser(
        "quiet-hours", help="Show which upcoming hours fall inside quiet hours"
    )
    quiet_parser.add_argument("--start", required=True, help="Start time, HH:MM")
    quiet_parser.add_argument("--end", required=True, help="End time, HH:MM")
    quiet_parser.add_argument(
        "--hours", type=int, default=24, help="Hours to list (default: 24)"
    )
    quiet_parser.set_defaults(func=cmd_quiet_hours)

    # prefs
    prefs_parser = subparsers.add_parser("prefs", help="Notification preference management")
    prefs_subparsers = prefs_parser.add_subparsers(dest="prefs_command", help="Preference commands")

    prefs_show = prefs_subparsers.add_parser("show", help="Print stored preferences as JSON")
    prefs_show.set_defaults(func=cmd_prefs)

    prefs_preset = prefs_subparsers.add_parser("preset", help="Apply a preset")
    prefs_preset.add_argument("name", help="default, all_enabled, minimal or balanced")
    prefs_preset.set_defaults(func=cmd_prefs)

    prefs_parser.set_defaults(func=cmd_prefs)

    args = parser.parse_args(argv)

    if args.version:
        cmd_version(args)
        return 0

    if not args.command:
        parser.print_help()
        return 0

    from notify_engine.logging_config import setup_logging

    setup_logging(level=args.log_level, json_output=args.json_logs)

    result = args.func(args)
    return result if isinstance(result, int) else 0


if __name__ == "__main__":
    sys.exit(main())
