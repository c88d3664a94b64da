"""jiradetails CLI.

Reads branch names (``git branch``) or free text from stdin, looks up the
Jira summary for every issue key it finds and prints one of:

  --table         key | summary rows (default)
  --html          <ul> list
  --markdown      bullet list
  --summary-only  summaries only, one per line
  --current       the branch list with a summary column, current branch marked

Summaries are cached in an append-only file so repeated runs only ask Jira
about keys they have not seen before. Network and cache failures degrade the
output but never the exit code; the only failing exit is missing input.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any, TextIO

import urllib3

from . import __version__
from .cache_store import CacheStore
from .config import OutputMode, RunConfig, load_config, resolve_config_path
from .env_auth import EnvAuthConfig, EnvironmentAuthManager, create_env_auth_manager
from .errors import ConfigError, UsageError
from .fetcher import RemoteFetcher
from .jira_rest import JiraRestClient
from .keys import dedupe, extract_keys, parse_branch_records
from .logging import configure_logging, get_logger
from .presenter import render_text
from .reconcile import Reconciler, format_report
from .ux import print_error

USAGE_MESSAGE = "Usage: git branch | jiradetails"
EXIT_USAGE = 1

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.RawDescriptionHelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="jiradetails",
        description="Annotate Jira issue keys from stdin with their summaries",
        epilog=USAGE_MESSAGE,
        formatter_class=_HelpFormatter,
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    modes = p.add_mutually_exclusive_group()
    modes.add_argument(
        "--table", dest="mode", action="store_const", const=OutputMode.TABLE,
        help="Aligned key | summary rows (default)",
    )
    modes.add_argument(
        "--html", dest="mode", action="store_const", const=OutputMode.HTML,
        help="HTML unordered list",
    )
    modes.add_argument(
        "--markdown", dest="mode", action="store_const", const=OutputMode.MARKDOWN,
        help="Markdown bullet list",
    )
    modes.add_argument(
        "--summary-only", dest="mode", action="store_const", const=OutputMode.SUMMARY,
        help="Only the summaries, one per line",
    )
    modes.add_argument(
        "--current", dest="mode", action="store_const", const=OutputMode.CURRENT,
        help="Branch table marking the checked-out branch",
    )

    p.add_argument(
        "--text",
        action="store_true",
        help="Treat input as free text and pick up every key on every line",
    )
    p.add_argument("--cache", dest="cache_path", help="Cache file (env: JIRADETAILS_CACHE)")
    p.add_argument("--config", help="YAML config file (env: JIRADETAILS_CONFIG)")
    p.add_argument(
        "--insecure",
        action="store_true",
        help="Skip TLS certificate verification (env: JIRA_VERIFY_TLS=0)",
    )
    p.add_argument("--timeout", type=float, help="HTTP timeout in seconds (default 30)")
    p.add_argument("--batch-size", type=_positive_int, help="Keys per search request (default 100)")
    p.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    p.add_argument("--no-dotenv", action="store_true", help="Do not load .env files")

    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Debug logging on stderr")
    verbosity.add_argument(
        "--quiet", "-q", action="store_true",
        help="Only log errors (env: JIRADETAILS_QUIET=1)",
    )
    p.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    return p


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    log_level = None
    if args.verbose:
        log_level = "DEBUG"
    elif args.quiet:
        log_level = "ERROR"
    return {
        "mode": args.mode,
        "whole_text": args.text,
        "cache_path": args.cache_path,
        "verify_tls": False if args.insecure else None,
        "timeout": args.timeout,
        "batch_size": args.batch_size,
        "color": False if args.no_color else None,
        "log_level": log_level,
        "json_logging": True if args.json_logs else None,
    }


def read_input(stream: TextIO) -> str:
    """Read all of ``stream``; raise ``UsageError`` if nothing is piped in."""
    if hasattr(stream, "isatty") and stream.isatty():
        raise UsageError(USAGE_MESSAGE)
    data = stream.read()
    if not data:
        raise UsageError(USAGE_MESSAGE)
    return data


def build_fetcher(cfg: RunConfig, auth: EnvironmentAuthManager) -> RemoteFetcher | None:
    creds = auth.get_credentials(domain=cfg.jira_domain, user=cfg.jira_user)
    if creds is None:
        return None
    if not cfg.verify_tls:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        get_logger().debug("TLS certificate verification disabled")
    client = JiraRestClient(
        base_url=creds.domain,
        user=creds.user,
        password=creds.password,
        verify_tls=cfg.verify_tls,
        timeout=cfg.timeout,
    )
    return RemoteFetcher(client, batch_size=cfg.batch_size)


def run(
    cfg: RunConfig,
    text: str,
    *,
    fetcher: RemoteFetcher | None,
    stdout: TextIO | None = None,
) -> int:
    stdout = stdout or sys.stdout
    logger = get_logger()
    keys = dedupe(extract_keys(text, whole_text=cfg.whole_text))
    records = (
        parse_branch_records(text) if cfg.presentation.mode is OutputMode.CURRENT else None
    )
    report = Reconciler(CacheStore(cfg.cache_path), fetcher, logger=logger).reconcile(keys)
    for line in format_report(report):
        logger.debug(line)
    output = render_text(cfg.presentation, report.requested, report.mapping, records=records)
    if output:
        stdout.write(output + "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.text and args.mode is OutputMode.CURRENT:
        parser.error("--text cannot be combined with --current")
    try:
        text = read_input(sys.stdin)
    except UsageError as exc:
        print_error(str(exc))
        return EXIT_USAGE

    auth = create_env_auth_manager(EnvAuthConfig(load_dotenv=not args.no_dotenv))
    overrides = _overrides(args)
    config_problem: ConfigError | None = None
    try:
        cfg = load_config(resolve_config_path(args.config, os.environ), overrides=overrides)
    except ConfigError as exc:
        config_problem = exc
        cfg = load_config(None, overrides=overrides)
    logger = configure_logging(json_logging=cfg.json_logging, level=cfg.log_level)
    if config_problem is not None:
        logger.warning(f"{config_problem}; using defaults")
    return run(cfg, text, fetcher=build_fetcher(cfg, auth))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
