"""pulsecheck - HTTP(S) endpoint and TLS certificate health checks."""

import argparse
import logging
import sys

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _cmd_check(args: argparse.Namespace) -> None:
    """Execute the check command - run one check pass over the configured monitors."""
    _setup_logging(args.verbose)

    # Import here to allow logging setup first
    from .config import ConfigError, load_config
    from .database import DatabaseError, init_db
    from .monitor import Monitor

    # 1. Load configuration
    try:
        config = load_config(args.config)
        logger.debug("Configuration loaded from %s", args.config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    if args.monitor:
        known = {m.monitor_id for m in config.monitors}
        unknown = [monitor_id for monitor_id in args.monitor if monitor_id not in known]
        if unknown:
            logger.error("Unknown monitor id(s): %s", ", ".join(unknown))
            sys.exit(1)

    # 2. Initialize database
    try:
        db_conn = init_db(config.database.path)
    except DatabaseError as e:
        logger.error("Database error: %s", e)
        sys.exit(1)

    # 3. Run checks
    monitor = Monitor(config, db_conn)
    try:
        results = monitor.check_all(args.monitor or None)
    finally:
        monitor.stop()
        db_conn.close()

    # 4. Report
    any_down = False
    for monitor_config in config.monitors:
        result = results.get(monitor_config.monitor_id)
        if result is None:
            continue
        status = "UP" if result.is_up else "DOWN"
        any_down = any_down or not result.is_up
        print(f"{status:<4}  {monitor_config.monitor_id:<16} {result.ping:>6}ms  {result.message}")

    if any_down:
        sys.exit(1)


def _webhook_events(webhook) -> str:
    events = [name for name, enabled in (("down", webhook.on_failure), ("up", webhook.on_recovery)) if enabled]
    return ", ".join(events)


def _cmd_test_alert(args: argparse.Namespace) -> None:
    """Execute the test-alert command - send a test payload to each enabled webhook."""
    from .alerter import WebhookNotifier
    from .config import ConfigError, load_config

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    webhooks = config.alerts.webhooks
    enabled = [webhook for webhook in webhooks if webhook.enabled]

    for webhook in webhooks:
        if not webhook.enabled:
            print(f"SKIPPED  {webhook.url} (disabled)")

    if not enabled:
        print("Error: No enabled webhooks in alerts section")
        sys.exit(1)

    results = WebhookNotifier(config.alerts).test_webhooks()

    failed = 0
    for webhook in enabled:
        delivered = results.get(webhook.url, False)
        failed += not delivered
        state = "OK" if delivered else "FAILED"
        print(f"{state:<8} {webhook.url} (notifies on: {_webhook_events(webhook)})")

    print(f"\n{len(enabled) - failed}/{len(enabled)} enabled webhook(s) accepted the test notification")

    if failed:
        sys.exit(1)


def main() -> None:
    """Main entry point for the pulsecheck package."""
    parser = argparse.ArgumentParser(
        description="pulsecheck - HTTP(S) endpoint and TLS certificate health checks"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pulsecheck {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Check subcommand (default behavior)
    check_parser = subparsers.add_parser(
        "check",
        help="Run one check pass over the configured monitors (default)",
    )
    check_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    check_parser.add_argument(
        "-m", "--monitor",
        action="append",
        help="Only check this monitor id (repeatable)",
    )
    check_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    check_parser.set_defaults(func=_cmd_check)

    # Test-alert subcommand
    test_alert_parser = subparsers.add_parser(
        "test-alert",
        help="Test webhook alert configuration",
    )
    test_alert_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    test_alert_parser.set_defaults(func=_cmd_test_alert)

    args = parser.parse_args()

    # Default to 'check' if no command specified
    if args.command is None:
        args.config = "config.yaml"
        args.monitor = None
        args.verbose = False
        args.func = _cmd_check

    args.func(args)
