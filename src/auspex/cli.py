"""
Command line interface for the Auspex alerting engine.
"""
import argparse
import json
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .alerting import (
    CorrelationEngine,
    DeliveryAuditor,
    NotificationDispatcher,
    SuppressionEvaluator,
    build_notifiers,
)
from .config import AlerterConfig
from .exceptions import ConfigurationError, StoreError, StoreUnavailableError
from .logging_config import configure_cli_logging, reset_logging_config
from .models import Alert
from .scheduler import IntervalScheduler
from .storage import AlertStore

logger = logging.getLogger(__name__)


def load_config(args: argparse.Namespace) -> AlerterConfig:
    """Load configuration from --config-file or the standard locations."""
    config_file = getattr(args, 'config_file', None)
    return AlerterConfig.load(config_file) if config_file else AlerterConfig.load()


def open_store(config: AlerterConfig) -> AlertStore:
    """
    Open the store and check that it answers.

    Raises:
        StoreUnavailableError: If the database cannot be opened
    """
    store = AlertStore(config.db_path)
    store.ping()
    return store


def build_engine(
    config: AlerterConfig,
    store: AlertStore,
    session=None,
    mailer=None
) -> CorrelationEngine:
    """Wire the correlation engine with its dispatcher, auditor and senders."""
    notifiers = build_notifiers(config, session=session, mailer=mailer)
    dispatcher = NotificationDispatcher(store, notifiers, DeliveryAuditor(store))
    suppression = SuppressionEvaluator(store, config.suppression_granularity)
    return CorrelationEngine(
        store,
        dispatcher,
        suppression,
        dedup_window_minutes=config.dedup_window_minutes,
    )


def _alert_line(alert: Alert) -> str:
    resolved = alert.resolved_at.isoformat(sep=" ", timespec="seconds") if alert.resolved_at else "-"
    return (
        f"#{alert.id:<6} {alert.fired_at.isoformat(sep=' ', timespec='seconds')}  "
        f"{alert.alert_type.value:<9} {alert.severity:<8} target={alert.target_id:<5} "
        f"resolved={resolved}  notified={alert.notification_count}  {alert.message}"
    )


def _print_alerts(alerts: List[Alert], as_json: bool) -> None:
    if as_json:
        print(json.dumps([a.model_dump(mode="json") for a in alerts], indent=2))
        return
    if not alerts:
        print("No alerts.")
        return
    for alert in alerts:
        print(_alert_line(alert))


def _with_store(args: argparse.Namespace, action) -> int:
    """Run a read-only query against the store with uniform error handling."""
    try:
        config = load_config(args)
        store = open_store(config)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1
    except StoreUnavailableError as e:
        logger.error(f"Cannot open alert store: {e}")
        print(f"ERROR: {e}")
        return 1

    try:
        return action(store)
    except StoreError as e:
        logger.error(f"Query failed: {e}", exc_info=args.debug)
        print(f"ERROR: {e}")
        return 1
    finally:
        store.close()


def handle_run(args: argparse.Namespace) -> int:
    """
    Handle the run subcommand.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        config = load_config(args)
        config.validate()
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"ERROR: {e}")
        return 1

    # file settings apply once the config is known
    reset_logging_config()
    configure_cli_logging(
        verbose=args.verbose,
        quiet=args.quiet,
        debug=args.debug,
        default_level=config.log_level,
        log_file=config.log_file,
        use_json=config.log_format == "json",
    )

    try:
        store = open_store(config)
    except StoreUnavailableError as e:
        logger.error(f"Cannot open alert store: {e}")
        return 1

    engine = build_engine(config, store)

    logger.info(f"Auspex alerter {__version__} starting")
    logger.info(
        f"Check interval: {config.check_interval_seconds}s, "
        f"dedup window: {config.dedup_window_minutes}m, "
        f"suppression granularity: {config.suppression_granularity}"
    )

    try:
        if args.once:
            summary = engine.run_cycle()
            print(
                f"Processed {summary.rules_processed} rule(s): "
                f"{summary.alerts_opened} opened, {summary.alerts_recovered} recovered, "
                f"{summary.suppressed} suppressed, {summary.errors} error(s)"
            )
            return 0 if summary.errors == 0 else 1

        scheduler = IntervalScheduler(config.check_interval_seconds, engine.run_cycle)

        def _shutdown(signum, frame):
            logger.info(f"Received signal {signum}, shutting down")
            scheduler.stop()

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)

        scheduler.run_forever()
        return 0
    finally:
        store.close()
        logger.info("Auspex alerter stopped")


def handle_active(args: argparse.Namespace) -> int:
    """List unresolved alerts."""
    def action(store: AlertStore) -> int:
        _print_alerts(store.active_alerts(), args.json)
        return 0

    return _with_store(args, action)


def handle_history(args: argparse.Namespace) -> int:
    """List alert history, newest first."""
    def action(store: AlertStore) -> int:
        alerts = store.alert_history(
            target_id=args.target_id, limit=args.limit, offset=args.offset
        )
        _print_alerts(alerts, args.json)
        return 0

    return _with_store(args, action)


def handle_deliveries(args: argparse.Namespace) -> int:
    """List delivery attempts for one alert."""
    def action(store: AlertStore) -> int:
        if store.get_alert(args.alert_id) is None:
            print(f"ERROR: alert {args.alert_id} not found")
            return 1

        records = store.deliveries_for_alert(args.alert_id)
        if args.json:
            print(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
            return 0
        if not records:
            print("No delivery attempts recorded.")
            return 0
        for record in records:
            line = (
                f"{record.delivered_at.isoformat(sep=' ', timespec='seconds')}  "
                f"{record.channel_type:<12} channel={record.channel_id:<4} "
                f"{record.status.value:<6} {record.recipient}"
            )
            if record.error_message:
                line += f"  ({record.error_message})"
            print(line)
        return 0

    return _with_store(args, action)


def handle_stats(args: argparse.Namespace) -> int:
    """Show alert statistics over a time window."""
    def action(store: AlertStore) -> int:
        stats: Dict[str, Any] = store.alert_stats(hours=args.hours)
        print(json.dumps(stats, indent=2))
        return 0

    return _with_store(args, action)


def handle_suppressions(args: argparse.Namespace) -> int:
    """List maintenance windows."""
    def action(store: AlertStore) -> int:
        suppressions = store.list_suppressions(active_only=args.active)
        if args.json:
            print(json.dumps([s.model_dump(mode="json") for s in suppressions], indent=2))
            return 0
        if not suppressions:
            print("No maintenance windows.")
            return 0
        for s in suppressions:
            scope = f"target={s.target_id}" if s.target_id is not None else "all targets"
            recurrence = s.recurrence.value if s.recurrence else "once"
            days = f" days={s.days_of_week}" if s.days_of_week else ""
            state = "" if s.enabled else " (disabled)"
            print(
                f"#{s.id:<4} {s.name or '-'}  {scope}  {recurrence}{days}  "
                f"{s.start_time.isoformat(sep=' ', timespec='minutes')} -> "
                f"{s.end_time.isoformat(sep=' ', timespec='minutes')}{state}"
            )
        return 0

    return _with_store(args, action)


def handle_version(args: argparse.Namespace) -> int:
    """
    Handle the version subcommand.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    print(f"Auspex alerter version {__version__}")
    print("Auspex SNMP Monitor - Alerting Engine")

    if args.verbose:
        print(f"\nPython: {sys.version}")

    return 0


def handle_config(args: argparse.Namespace) -> int:
    """
    Handle the config subcommand.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        config = load_config(args)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logger.error(f"Config operation failed: {e}", exc_info=args.debug)
        print(f"ERROR: {e}")
        return 1

    if args.action == "validate":
        try:
            config.validate()
        except ConfigurationError as e:
            print(f"ERROR: Configuration validation failed - {e}")
            return 1
        print("✓ Configuration is valid")
        if not config.smtp_configured:
            print("  Note: SMTP is not configured; email channels will fail")
        return 0

    # show
    print("Current Auspex alerter configuration:")
    print(f"  Check Interval: {config.check_interval_seconds} seconds")
    print(f"  Dedup Window: {config.dedup_window_minutes} minutes")
    print(f"  Database: {config.db_path}")
    print(f"  SMTP: {config.smtp_host}:{config.smtp_port} "
          f"({'configured' if config.smtp_configured else 'not configured'})")
    print(f"  PagerDuty default key: {'set' if config.pagerduty_default_key else 'not set'}")

    if args.verbose:
        print("\nFull configuration:")
        print(json.dumps(config.to_dict(redact=True), indent=2))

    return 0


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser with subcommands.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="auspex-alerter",
        description="Auspex alerting engine: correlate target status and send notifications",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the alerter loop
  %(prog)s run
  %(prog)s run --once

  # Inspect alerts
  %(prog)s active
  %(prog)s history --target-id 3 --limit 20
  %(prog)s deliveries 42
  %(prog)s stats --hours 48
  %(prog)s suppressions --active

  # Show version and configuration
  %(prog)s version
  %(prog)s config show
  %(prog)s config validate

Environment Variables:
  AUSPEX_ALERTER_CHECK_INTERVAL_SECONDS  Seconds between cycles (default: 30)
  AUSPEX_ALERTER_DEDUP_WINDOW_MINUTES    Dedup window in minutes (default: 15)
  AUSPEX_DB_PATH                         SQLite database path (default: auspex.db)
  AUSPEX_SMTP_HOST, AUSPEX_SMTP_PORT     Mail relay (default: smtp.gmail.com:587)
  AUSPEX_SMTP_USER, AUSPEX_SMTP_PASSWORD Mail relay credentials
  AUSPEX_SMTP_FROM                       Default sender address
  AUSPEX_PAGERDUTY_INTEGRATION_KEY       Default PagerDuty routing key
        """
    )

    # Global flags (available to all subcommands)
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Enable quiet mode (only warnings and errors)"
    )
    parser.add_argument(
        "--config-file",
        metavar="PATH",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (overrides --verbose and --quiet)"
    )

    subparsers = parser.add_subparsers(
        dest="subcommand",
        help="Available subcommands"
    )

    # ========================================
    # RUN subcommand
    # ========================================
    run_parser = subparsers.add_parser(
        "run",
        help="Run the correlation loop"
    )
    run_parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit"
    )
    run_parser.set_defaults(func=handle_run)

    # ========================================
    # Query subcommands
    # ========================================
    active_parser = subparsers.add_parser(
        "active",
        help="List unresolved alerts"
    )
    active_parser.set_defaults(func=handle_active)

    history_parser = subparsers.add_parser(
        "history",
        help="List alert history, newest first"
    )
    history_parser.add_argument(
        "--target-id",
        type=int,
        help="Only show alerts for this target"
    )
    history_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum alerts to show (default: 50)"
    )
    history_parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="Alerts to skip (default: 0)"
    )
    history_parser.set_defaults(func=handle_history)

    deliveries_parser = subparsers.add_parser(
        "deliveries",
        help="List delivery attempts for an alert"
    )
    deliveries_parser.add_argument(
        "alert_id",
        type=int,
        help="Alert id"
    )
    deliveries_parser.set_defaults(func=handle_deliveries)

    stats_parser = subparsers.add_parser(
        "stats",
        help="Show alert statistics"
    )
    stats_parser.add_argument(
        "--hours",
        type=int,
        default=24,
        help="Time window in hours (default: 24)"
    )
    stats_parser.set_defaults(func=handle_stats)

    suppressions_parser = subparsers.add_parser(
        "suppressions",
        help="List maintenance windows"
    )
    suppressions_parser.add_argument(
        "--active",
        action="store_true",
        help="Only show windows that are active now or recurring"
    )
    suppressions_parser.set_defaults(func=handle_suppressions)

    for query_parser in (active_parser, history_parser, deliveries_parser, suppressions_parser):
        query_parser.add_argument(
            "--json",
            action="store_true",
            help="Print JSON instead of text"
        )

    # ========================================
    # VERSION subcommand
    # ========================================
    version_parser = subparsers.add_parser(
        "version",
        help="Show version information"
    )
    version_parser.set_defaults(func=handle_version)

    # ========================================
    # CONFIG subcommand
    # ========================================
    config_parser = subparsers.add_parser(
        "config",
        help="Show or validate configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s show
  %(prog)s validate
  %(prog)s show --verbose
        """
    )
    config_parser.add_argument(
        "action",
        nargs="?",
        choices=["show", "validate"],
        default="show",
        help="Config action (default: show)"
    )
    config_parser.set_defaults(func=handle_config)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_cli_logging(
        verbose=args.verbose,
        quiet=args.quiet,
        debug=args.debug,
        default_level="INFO" if getattr(args, 'subcommand', None) == "run" else "WARNING",
    )

    if not hasattr(args, 'func'):
        parser.print_help()
        sys.exit(1)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
