"""Meridian CLI - Command-line interface."""

import argparse
import json
import sys
from datetime import date
from pathlib import Path

from ..observability import setup_logging
from ..resilience.error_handler import DriftScanError, InvalidInputError, MeridianError


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


class MeridianCLI:
    """Command-line interface for the Meridian console."""

    def __init__(self, session_scope=None):
        self.parser = self._create_parser()
        self._session_scope = session_scope

    def _create_parser(self):
        parser = argparse.ArgumentParser(prog="meridian", description="Meridian infrastructure console CLI")
        parser.add_argument("--db-url", help="Database URL (defaults to settings)")
        parser.add_argument("--log-level", default="WARNING", help="Log level for console output")
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # Init command
        init_parser = subparsers.add_parser("init", help="Create the database schema (without Alembic)")
        init_parser.add_argument("--drop", action="store_true", help="Drop all tables first")

        # Seed command
        seed_parser = subparsers.add_parser("seed", help="Seed a demo environment")
        seed_parser.add_argument("--name", default="staging", help="Environment name")

        # Declared / actual state
        declare_parser = subparsers.add_parser("declare", help="Load declared state for an environment")
        declare_parser.add_argument("env", help="Environment name or id")
        declare_parser.add_argument("file", type=Path, help="Snapshot JSON or Terraform state")
        declare_parser.add_argument("--terraform", action="store_true", help="FILE is a terraform.tfstate")
        declare_parser.add_argument("--partial", action="store_true", help="Do not undeclare absent resources")

        observe_parser = subparsers.add_parser("observe", help="Load observed state for an environment")
        observe_parser.add_argument("env", help="Environment name or id")
        observe_parser.add_argument("file", type=Path, help="Snapshot JSON")
        observe_parser.add_argument("--partial", action="store_true", help="Do not mark absent resources missing")

        # Scan command
        scan_parser = subparsers.add_parser("scan", help="Run a drift scan")
        scan_parser.add_argument("env", help="Environment name or id")

        # Spend commands
        import_parser = subparsers.add_parser("import-costs", help="Import a cost CSV")
        import_parser.add_argument("env", help="Environment name or id")
        import_parser.add_argument("file", type=Path, help="CSV file")

        spend_parser = subparsers.add_parser("spend", help="Show the month-to-date spend summary")
        spend_parser.add_argument("env", help="Environment name or id")
        spend_parser.add_argument("--as-of", type=date.fromisoformat, help="Date (YYYY-MM-DD), default today")
        spend_parser.add_argument("--json", action="store_true", help="Output as JSON")

        # Health command
        sweep_parser = subparsers.add_parser("sweep", help="Run a health sweep")
        sweep_parser.add_argument("env", help="Environment name or id")

        # Status command
        status_parser = subparsers.add_parser("status", help="Show the environment overview")
        status_parser.add_argument("env", help="Environment name or id")
        status_parser.add_argument("--json", action="store_true", help="Output as JSON")

        return parser

    def session_scope(self):
        if self._session_scope is not None:
            return self._session_scope()
        from ..core.db import get_session

        return get_session()

    def run(self, args=None):
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        setup_logging(level=parsed.log_level)
        if parsed.db_url:
            from ..core.db import get_engine, reset_engine

            reset_engine()
            get_engine(parsed.db_url)

        handler = getattr(self, f"cmd_{parsed.command.replace('-', '_')}", None)
        if not handler:
            print(f"Unknown command: {parsed.command}")
            return 1
        try:
            return handler(parsed)
        except MeridianError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    def cmd_init(self, args):
        from ..core.db import drop_all_tables, init_db

        if args.drop:
            print("Dropping all tables...")
            drop_all_tables()
        print("Initializing database...")
        init_db()
        print("Database initialized successfully!")
        return 0

    def cmd_seed(self, args):
        from ..core.db import seed_demo_data

        with self.session_scope() as session:
            created = seed_demo_data(session, name=args.name)
            print(f"Seeded environment '{args.name}' ({created['environment'].id})")
            print(
                f"Resources: {len(created['resources'])}, cost records: {len(created['cost_records'])}, "
                f"workloads: {len(created['workloads'])}"
            )
        return 0

    def _read_json(self, path: Path):
        try:
            return json.loads(path.read_text())
        except OSError as e:
            raise InvalidInputError(f"Cannot read {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"{path} is not valid JSON: {e}") from e

    def cmd_declare(self, args):
        from ..core.db import resolve_environment
        from ..drift import load_snapshot, load_terraform_state, record_declared_state

        doc = self._read_json(args.file)
        entries = load_terraform_state(doc) if args.terraform else load_snapshot(doc)
        with self.session_scope() as session:
            env = resolve_environment(session, args.env)
            counts = record_declared_state(session, env, entries, complete=not args.partial)
        print(f"Declared state loaded: {counts}")
        return 0

    def cmd_observe(self, args):
        from ..core.db import resolve_environment
        from ..drift import load_snapshot, record_actual_state

        entries = load_snapshot(self._read_json(args.file))
        with self.session_scope() as session:
            env = resolve_environment(session, args.env)
            counts = record_actual_state(session, env, entries, complete=not args.partial)
        print(f"Actual state loaded: {counts}")
        return 0

    def cmd_scan(self, args):
        from ..drift import DriftScanner

        print(f"Scanning {args.env} for drift...")
        with self.session_scope() as session:
            try:
                result = DriftScanner(session).scan_environment(args.env, triggered_by="cli")
            except DriftScanError as e:
                # leave the session to commit so the failed scan is kept
                print(f"Scan FAILED: {e}", file=sys.stderr)
                return 1
        print(f"Resources scanned: {result.resources_scanned}, drifted: {result.drifted_resources}")
        print(f"Findings opened: {result.findings_opened}, resolved: {result.findings_resolved}")
        if result.worst_severity:
            print(f"Worst severity: {result.worst_severity.value}")
        return 0

    def cmd_import_costs(self, args):
        from ..spend import CostImporter

        if not args.file.exists():
            raise InvalidInputError(f"File not found: {args.file}")
        with self.session_scope() as session:
            result = CostImporter(session).import_csv(args.env, args.file)
        if result.skipped:
            print(f"{result.source} was already imported, nothing to do")
            return 0
        print(
            f"Imported {result.source}: {result.rows_created} created, {result.rows_updated} updated, "
            f"{result.rows_rejected} rejected"
        )
        for error in result.errors[:10]:
            print(f"  line {error['line']}: {error['error']}")
        return 0

    def cmd_spend(self, args):
        from ..spend import build_spend_summary

        with self.session_scope() as session:
            summary = build_spend_summary(session, args.env, args.as_of).to_dict()
        if args.json:
            _print_json(summary)
            return 0
        currency = summary["currency"]
        print(f"Month to date: {summary['month_to_date']} {currency} (as of {summary['as_of']})")
        print(f"Forecast:      {summary['forecast']} {currency}")
        if summary["percent_change"] is not None:
            print(f"Vs last month: {summary['percent_change']:+.1f}%")
        for service in summary["top_services"]:
            print(f"  {service['service']:<30} {service['amount']:>12}")
        for budget in summary["budgets"]:
            print(f"Budget {budget['name']}: {budget['state']} ({budget['percent_used']:.1f}% of {budget['amount']})")
        if summary["excluded_records"]:
            print(f"Excluded {summary['excluded_records']} records in other currencies")
        return 0

    def cmd_sweep(self, args):
        from ..health import run_sweep

        print(f"Sweeping workloads in {args.env}...")
        with self.session_scope() as session:
            result = run_sweep(session, args.env, triggered_by="cli")
        print(f"Checked {result.checked} workloads ({result.probed} probed): {result.by_status}")
        return 0

    def cmd_status(self, args):
        from ..overview import build_overview

        with self.session_scope() as session:
            overview = build_overview(session, args.env)
        if args.json:
            _print_json(overview)
            return 0
        env = overview["environment"]
        drift = overview["drift"]
        spend = overview["spend"]
        print(f"Environment: {env['name']} ({env['provider']})")
        print(f"Drift: {drift['open_total']} open findings on {drift['drifted_resources']} resources")
        print(f"Last scan: {drift['last_scan_at'] or 'never'}")
        print(f"Spend: {spend['month_to_date']} MTD, forecast {spend['forecast']} {env['currency']}")
        print(f"Budgets: {spend['worst_budget_state'] or 'none'}")
        print(f"Workloads: {overview['health']}")
        return 0


def cli_main():
    """Main entry point for CLI."""
    cli = MeridianCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    cli_main()
