"""
CLI entry point for the visa bot. Wires config -> server registry -> visa service -> report
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone

from config import ConfigError, load_config
from ingest.registry import ServerRegistry, UnknownServerError
from models import FailuresMode
from report.renderer import render
from signoff import VisaService
from storage.observations import ObservationRegistry
from storage.visa_history import VisaHistoryStore

logger = logging.getLogger(__name__)

CONTRIBUTION_COLUMNS = ['pr_number', 'pr_title', 'pr_author', 'pr_head_commit', 'jira_issue_id', 'jira_status_name', 'tc_branch_name']
STATUS_COLUMNS = ['suite_id', 'resolved_branch', 'suite_is_finished', 'finished_suite_commit', 'queued_builds', 'running_builds', 'observations_status', 'web_links_queued_suites']
VISA_COLUMNS = ['date', 'branch_name', 'user_name', 'ticket', 'build_type_name', 'status', 'blockers', 'comment_url']
MUTE_COLUMNS = ['id', 'tests', 'ticket_status', 'mute_date', 'text']
FAILURE_COLUMNS = ['build_id', 'suite_name', 'result', 'failed_tests', 'blockers', 'web_to_build']


def _write_output(rendered: str, fmt: str, out_file: str):
    """Write output to a file when requested, otherwise to stdout."""
    if not out_file:
        print(rendered)
        return
    out_dir = os.path.dirname(out_file)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    # newline='' is safe for CSV on Windows and harmless for other formats
    with open(out_file, 'w', encoding='utf-8', newline='') as fh:
        fh.write(rendered)
    print(f"Wrote {fmt} report to {out_file}")


def _emit_rows(args, rows, title: str, columns=None):
    rendered = render(
        rows,
        fmt=args.output,
        title=title,
        columns=columns,
        generated_at=datetime.now(timezone.utc).isoformat(),
        scope=args.server,
    )
    _write_output(rendered, args.output, args.out_file)


def _emit_message(args, message: str):
    _emit_rows(args, [{'message': message}], args.command)


def _build_service(args) -> VisaService:
    """Create the visa service and its owned state from the loaded configuration."""
    config = load_config(args.config)
    history = VisaHistoryStore(args.history_db or config.history_db)
    return VisaService(ServerRegistry(config), history, ObservationRegistry(), config)


def _cmd_contributions(service: VisaService, args):
    rows = [c.to_dict() for c in service.get_contributions_to_check(args.server)]
    _emit_rows(args, rows, 'Contributions to check', None if args.all_columns else CONTRIBUTION_COLUMNS)


def _cmd_status(service: VisaService, args):
    rows = [s.to_dict() for s in service.contribution_statuses(args.server, args.pr_id)]
    _emit_rows(args, rows, f"Contribution {args.pr_id}", STATUS_COLUMNS)


def _cmd_visas(service: VisaService, args):
    rows = [v.to_dict() for v in service.get_visas_status(args.server)]
    _emit_rows(args, rows, 'Visas', VISA_COLUMNS)


def _cmd_mutes(service: VisaService, args):
    rows = [m.to_dict() for m in service.get_mutes(args.server, args.project)]
    _emit_rows(args, rows, f"Mutes of {args.project}", MUTE_COLUMNS)


def _cmd_trigger(service: VisaService, args):
    message = service.trigger_builds_and_observe(
        args.server,
        args.branch,
        args.parent_suite or args.suites.split(',')[0].strip(),
        args.suites,
        top=args.top,
        observe=args.observe,
        ticket_id=args.ticket,
        pr_num=args.pr,
        user_name=args.user,
    )
    _emit_message(args, message or 'Builds triggered.')
    if args.observe:
        logger.info("Waiting for %s observation(s) to complete", service.observer.pending())
        service.observer.wait()


def _cmd_comment(service: VisaService, args):
    message = service.comment_jira(args.server, args.branch, args.suite, ticket_id=args.ticket, user_name=args.user)
    _emit_message(args, message)


def _cmd_visa_status(service: VisaService, args):
    status = service.current_visa_status(args.server, args.build_type, args.branch)
    _emit_rows(args, [status.to_dict()], f"Current visa status of {args.branch}")


def _cmd_failures(service: VisaService, args):
    report = service.get_pr_failures(args.server, args.build_type, args.branch, action=args.action, count=args.count)
    if report.build_not_found:
        _emit_message(args, f"No finished builds of {args.build_type} in branch {args.branch}.")
        return
    _emit_rows(args, report.to_rows(), f"Failures of {args.branch} ({report.mode}, {len(report.chains)} chain(s))", FAILURE_COLUMNS)


def _cmd_cancel(service: VisaService, args):
    _emit_message(args, service.cancel_observation(args.server, args.branch))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='visa-bot', description="TeamCity visa bot: contribution status and Jira sign-off")
    parser.add_argument("--config", type=str, default=None, help="Path to the JSON config file (defaults to VISA_BOT_CONFIG or visa_bot.json)")
    parser.add_argument("--server", type=str, default=None, help="Server id from the config (defaults to default_server)")
    parser.add_argument("--log-level", type=str, default=os.getenv('VISA_BOT_LOG_LEVEL', 'INFO'), help="Logging level (overrides VISA_BOT_LOG_LEVEL env)")
    parser.add_argument("--output", type=str, default="text", choices=['text', 'md', 'csv', 'json', 'html'], help="Output format")
    parser.add_argument("--out-file", type=str, default="", help="Output file path. If omitted output goes to stdout")
    parser.add_argument("--history-db", type=str, default="", help="Path to the SQLite visa history (overrides config and VISA_HISTORY_DB env)")
    parser.add_argument("--user", type=str, default=os.getenv('USER', ''), help="User name recorded with visa requests")

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('contributions', help="List open pull requests and PR-less contributions")
    p.add_argument("--all-columns", action="store_true", help="Show every contribution field")
    p.set_defaults(handler=_cmd_contributions)

    p = sub.add_parser('status', help="CI status of a contribution per applicable build type")
    p.add_argument("pr_id", type=int, help="Pull request number, negative for a PR-less branch suffix")
    p.set_defaults(handler=_cmd_status)

    p = sub.add_parser('visas', help="List requested visas")
    p.set_defaults(handler=_cmd_visas)

    p = sub.add_parser('mutes', help="List muted tests of a project")
    p.add_argument("--project", type=str, required=True, help="TeamCity project id")
    p.set_defaults(handler=_cmd_mutes)

    p = sub.add_parser('trigger', help="Trigger suites on a branch, optionally comment Jira when they finish")
    p.add_argument("--branch", type=str, required=True, help="TeamCity branch, e.g. pull/6224/head")
    p.add_argument("--suites", type=str, required=True, help="Comma separated build type ids")
    p.add_argument("--parent-suite", type=str, default="", help="Build type analyzed for the visa (defaults to the first suite)")
    p.add_argument("--top", action="store_true", help="Put builds at the top of the queue")
    p.add_argument("--observe", action="store_true", help="Comment the Jira ticket when builds are finished")
    p.add_argument("--ticket", type=str, default=None, help="Ticket id, e.g. IGNITE-10930 or 10930")
    p.add_argument("--pr", type=str, default=None, help="Pull request number for the actual commit hint")
    p.set_defaults(handler=_cmd_trigger)

    p = sub.add_parser('comment', help="Comment Jira with possible blockers of the latest finished build")
    p.add_argument("--branch", type=str, required=True)
    p.add_argument("--suite", type=str, required=True, help="Build type id")
    p.add_argument("--ticket", type=str, default=None)
    p.set_defaults(handler=_cmd_comment)

    p = sub.add_parser('visa-status', help="Blocker count of the latest finished build")
    p.add_argument("--build-type", type=str, required=True)
    p.add_argument("--branch", type=str, required=True)
    p.set_defaults(handler=_cmd_visa_status)

    p = sub.add_parser('failures', help="Failed suites and possible blockers of finished chain builds")
    p.add_argument("--build-type", type=str, required=True)
    p.add_argument("--branch", type=str, required=True)
    p.add_argument("--action", type=str, default=FailuresMode.LATEST, choices=list(FailuresMode.ALL), help="History covers the last --count chains, Latest and Chain the latest one")
    p.add_argument("--count", type=int, default=None, help="Number of chains for History (default 10)")
    p.set_defaults(handler=_cmd_failures)

    p = sub.add_parser('cancel', help="Cancel the observation of a branch")
    p.add_argument("--branch", type=str, required=True)
    p.set_defaults(handler=_cmd_cancel)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    try:
        service = _build_service(args)
    except ConfigError as e:
        parser.error(str(e))

    try:
        args.handler(service, args)
    except UnknownServerError as e:
        parser.error(f"Unknown server: {e}")
    finally:
        service.observer.shutdown(wait=True)
        service.history.close()


if __name__ == "__main__":
    main()
