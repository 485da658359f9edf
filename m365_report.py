#!/usr/bin/env python3
"""
M365 Admin Reports
Administrative reports for a Microsoft 365 tenant using Microsoft Graph.

Every report runs the same pipeline: connect -> fetch -> map -> filter ->
summarize -> export CSV -> optionally open the file.

Requirements:
- Azure AD App Registration with application permissions for the reports
  you run (see `m365_report.py --list` and each report's --help)

Usage:
    # Set environment variables (client secret MUST be env var for security)
    export MS365_TENANT_ID="your-tenant-id"
    export MS365_CLIENT_ID="your-client-id"
    export MS365_CLIENT_SECRET="your-client-secret"

    # List reports
    python m365_report.py --list

    # Run a report
    python m365_report.py group-owners --orphaned-only
    python m365_report.py site-storage --admin-url https://contoso-admin.sharepoint.com
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from rich.console import Console

from reportlib.config import ConfigError, generate_sample_config, load_config, report_options
from reportlib.connection import ConnectionSettings, GraphConnector, describe_requirement
from reportlib.constants import ENV_CLIENT_SECRET, USAGE_PERIODS
from reportlib.errors import ReportError, describe_cause
from reportlib.pipeline import ReportPipeline
from reportlib.prompts import ConsolePrompter, StaticPrompter
from reportlib.utils import (
    open_file,
    print_report_list,
    print_summary,
    setup_logging,
    summary_to_dict,
    write_json,
)
from reports import REPORTS

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

EPILOG = f"""
Examples:
    # Using environment variables (client secret MUST be env var)
    export MS365_TENANT_ID="your-tenant-id"
    export MS365_CLIENT_ID="your-client-id"
    export MS365_CLIENT_SECRET="your-client-secret"
    python m365_report.py group-owners

    # Orphaned groups only, written to a fixed path
    python m365_report.py group-owners --orphaned-only -o orphaned.csv

    # Mailboxes idle for 60+ days in the last 90-day usage period
    python m365_report.py mailbox-activity --period D90 --inactive-days 60 --inactive-only

    # Failed or quarantined mail from one sender over the last 5 days
    python m365_report.py message-trace --days 5 --sender ana@contoso.com --problems-only

    # Unattended run (no prompts, no progress bar)
    python m365_report.py app-credentials --expiring-within 30 --no-prompt --no-progress

Usage report periods: {', '.join(USAGE_PERIODS)}

Security Note:
    Client secrets must be provided via {ENV_CLIENT_SECRET} environment
    variable to avoid exposing secrets in shell history or process listings.
"""


def _global_options() -> argparse.ArgumentParser:
    """Options shared by every report subcommand."""
    parent = argparse.ArgumentParser(add_help=False)
    group = parent.add_argument_group('global options')
    group.add_argument('--config', metavar='FILE',
                       help='Path to YAML config file')
    group.add_argument('--output', '-o', metavar='FILE',
                       help='Output CSV path (default: <ReportName>_<yyyyMMdd_HHmmss>.csv)')
    group.add_argument('--output-dir', metavar='DIR',
                       help='Directory for the default output file (default: current directory)')
    group.add_argument('--tenant-id',
                       help='Azure AD tenant ID (or set MS365_TENANT_ID env var)')
    group.add_argument('--client-id',
                       help='Azure AD application (client) ID (or set MS365_CLIENT_ID env var)')
    # Client secret is env-var only for security (no CLI arg to avoid shell history exposure)
    group.add_argument('--admin-url', metavar='URL',
                       help='SharePoint admin URL, https://<tenant>-admin.sharepoint.com '
                            '(or set MS365_SHAREPOINT_ADMIN_URL env var)')
    group.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                       help='Logging level (default: INFO)')
    group.add_argument('--log-dir', metavar='DIR',
                       help='Also write a redacted log file to this directory')
    group.add_argument('--verbose', '-v', action='store_true',
                       help='Enable verbose logging (same as --log-level DEBUG)')
    group.add_argument('--summary-json', metavar='FILE',
                       help='Also write the run summary as JSON')
    group.add_argument('--open', action='store_true',
                       help='Open the report when done without asking')
    group.add_argument('--no-prompt', action='store_true',
                       help='Never prompt (missing settings fail, the report is not opened)')
    group.add_argument('--no-progress', action='store_true',
                       help='Disable the progress bar')
    return parent


def _add_report_options(subparser: argparse.ArgumentParser, definition) -> None:
    group = subparser.add_argument_group('report options')
    for option in definition.options:
        if option.is_flag:
            group.add_argument(option.cli_flag, dest=option.name, action='store_true', default=None,
                               help=option.help)
        else:
            group.add_argument(option.cli_flag, dest=option.name, type=option.type,
                               choices=option.choices, default=None, help=option.help)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='m365-report',
        description='M365 Admin Reports',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    parser.add_argument('--list', action='store_true',
                        help='List available reports and exit')
    parser.add_argument('--generate-config', action='store_true',
                        help='Generate a sample config file and exit')

    parent = _global_options()
    subparsers = parser.add_subparsers(dest='report', metavar='<report>')
    for slug, definition in REPORTS.items():
        subparser = subparsers.add_parser(
            slug,
            parents=[parent],
            help=definition.description,
            description=f"{definition.description}.\n\nRequired permissions: "
                        f"{'; '.join(describe_requirement(r) for r in definition.scopes)}",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        _add_report_options(subparser, definition)
    return parser


def _should_open(args, prompter, interactive: bool, path: str) -> bool:
    if args.open:
        return True
    if not interactive:
        return False
    return prompter.confirm(f"Open {path} now?", default=False)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Handle --generate-config
    if args.generate_config:
        print(generate_sample_config())
        return EXIT_OK

    console = Console()

    if args.list:
        print_report_list(list(REPORTS.values()), console)
        return EXIT_OK

    if not args.report:
        parser.print_usage()
        print("ERROR: No report given. Run with --list to see available reports.")
        return EXIT_USAGE

    try:
        config = load_config(args)
    except (FileNotFoundError, ConfigError) as e:
        print(f"ERROR: {e}")
        return EXIT_USAGE

    level = 'DEBUG' if args.verbose else config.get('log_level', 'INFO')
    setup_logging(level, config.get('log_dir'))

    definition = REPORTS[args.report]
    try:
        options = report_options(config, definition, args)
    except (ConfigError, TypeError, ValueError) as e:
        print(f"ERROR: Invalid report option in config: {e}")
        return EXIT_USAGE

    # Get client secret from environment only (security: not from CLI args or config)
    settings = ConnectionSettings(
        tenant_id=config.get('tenant_id'),
        client_id=config.get('client_id'),
        client_secret=os.environ.get(ENV_CLIENT_SECRET),
        admin_url=config.get('sharepoint_admin_url'),
    )

    interactive = not args.no_prompt and sys.stdin.isatty()
    prompter = ConsolePrompter(console) if interactive else StaticPrompter()

    pipeline = ReportPipeline(
        definition,
        GraphConnector(settings, prompter),
        show_progress=not args.no_progress,
    )

    try:
        context = pipeline.run(
            options,
            output_path=args.output,
            output_dir=config.get('output_dir', '.'),
        )
    except ReportError as e:
        print(f"ERROR: {e}")
        return EXIT_FAILED
    except Exception as e:
        print(f"ERROR: {definition.name} failed: {describe_cause(e)}")
        return EXIT_FAILED

    print_summary(definition.name, context, console)

    if args.summary_json:
        try:
            write_json(summary_to_dict(definition.name, context), args.summary_json)
        except ReportError as e:
            print(f"ERROR: {e}")
            return EXIT_FAILED

    if not context.rows and context.source_count:
        print("No rows matched the selected filters; the export contains only the header.")

    if _should_open(args, prompter, interactive, context.output_path):
        open_file(context.output_path)

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
