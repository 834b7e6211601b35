"""taskchain CLI — operator commands for scoring and chain anchoring.

Usage:
    python -m taskchain.cli status
    python -m taskchain.cli add-employee --id alice --org org-1 --name "Alice"
    python -m taskchain.cli create-task --id T-1 --org org-1 --assignee alice --title "Report"
    python -m taskchain.cli update-task --id T-1 --status completed
    python -m taskchain.cli recalculate --org org-1
    python -m taskchain.cli insights --org org-1
    python -m taskchain.cli poll
    python -m taskchain.cli serve --port 8000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from taskchain.config import DEFAULT_CONFIG_DIR, load_chain_settings
from taskchain.models.task import EmployeeRole, TaskPriority, TaskStatus, parse_utc
from taskchain.policy.resolver import PolicyResolver
from taskchain.service import TaskchainService


def _make_service(config_dir: Path) -> TaskchainService:
    """Create a TaskchainService with durable persistence."""
    resolver = PolicyResolver.from_config_dir(config_dir)
    return TaskchainService.from_settings(resolver, load_chain_settings())


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _fail(errors: list[str]) -> int:
    print(f"Failed: {'; '.join(errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    _print_json(service.status())
    return 0


def cmd_add_employee(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    result = service.add_employee(
        employee_id=args.id,
        organization_id=args.org,
        name=args.name,
        role=EmployeeRole(args.role),
        department=args.department,
        position=args.position,
    )
    if not result.success:
        return _fail(result.errors)
    print(f"Added employee: {result.data['employee']['id']}")
    return 0


def cmd_create_task(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    due: datetime | None = parse_utc(args.due) if args.due else None
    result = service.create_task(
        task_id=args.id,
        organization_id=args.org,
        assignee_id=args.assignee,
        assigner_id=args.assigner,
        title=args.title,
        priority=TaskPriority(args.priority),
        due_date=due,
    )
    if not result.success:
        return _fail(result.errors)
    print(f"Created task: {result.data['task']['id']}")
    return 0


def cmd_update_task(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    result = service.update_task_status(args.id, TaskStatus(args.status))
    if not result.success:
        return _fail(result.errors)
    _print_json(result.data)
    return 0


def cmd_score(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    result = service.get_employee_score(args.id)
    if not result.success:
        return _fail(result.errors)
    _print_json(result.data["score"])
    return 0


def cmd_recalculate(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    result = service.recalculate_scores(args.org)
    if not result.success:
        return _fail(result.errors)
    print(result.data["message"])
    return 0


def cmd_insights(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    _print_json(service.get_insights(args.org).to_dict())
    return 0


def cmd_rankings(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    _print_json([r.to_dict() for r in service.get_rankings(args.org)])
    return 0


def cmd_chain_log(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    if args.employee:
        entries = service.get_user_chain_log(args.employee)
    else:
        entries = service.get_organization_chain_log(args.org)
    _print_json([service.describe_entry(e) for e in entries])
    return 0


def cmd_reconcile(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    report = service.reconcile(args.org)
    _print_json(report.to_dict())
    return 1 if report.gaps and args.strict else 0


def cmd_poll(args: argparse.Namespace) -> int:
    """Run a single confirmation pass over pending anchors."""
    service = _make_service(args.config)
    summary = service.poll_anchors()
    _print_json(asdict(summary))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn
    from taskchain.api import create_app

    service = _make_service(args.config)
    app = create_app(service)
    print(
        f"taskchain API starting — http://{args.host}:{args.port}  docs: /docs",
        flush=True,
    )
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskchain",
        description="taskchain — productivity scoring and on-chain task audit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_DIR,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show system status")

    p_emp = sub.add_parser("add-employee", help="Register an employee")
    p_emp.add_argument("--id", required=True, help="Employee ID")
    p_emp.add_argument("--org", required=True, help="Organization ID")
    p_emp.add_argument("--name", required=True, help="Display name")
    p_emp.add_argument("--role", default="employee", choices=[r.value for r in EmployeeRole])
    p_emp.add_argument("--department", help="Department")
    p_emp.add_argument("--position", help="Position")

    p_task = sub.add_parser("create-task", help="Assign a new task")
    p_task.add_argument("--id", required=True, help="Task ID")
    p_task.add_argument("--org", required=True, help="Organization ID")
    p_task.add_argument("--assignee", required=True, help="Assignee employee ID")
    p_task.add_argument("--assigner", default="admin", help="Assigner ID")
    p_task.add_argument("--title", required=True, help="Task title")
    p_task.add_argument(
        "--priority", default="medium", choices=[p.value for p in TaskPriority],
    )
    p_task.add_argument("--due", help="Due date (ISO 8601, UTC if no offset)")

    p_upd = sub.add_parser("update-task", help="Change a task's status")
    p_upd.add_argument("--id", required=True, help="Task ID")
    p_upd.add_argument("--status", required=True, choices=[s.value for s in TaskStatus])

    p_score = sub.add_parser("score", help="Show an employee's productivity score")
    p_score.add_argument("--id", required=True, help="Employee ID")

    for name, help_text in (
        ("recalculate", "Recompute all scores for an organization"),
        ("insights", "Show organization insights"),
        ("rankings", "Show productivity rankings"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--org", required=True, help="Organization ID")

    p_log = sub.add_parser("chain-log", help="Show the anchored activity log")
    p_log.add_argument("--org", help="Organization ID")
    p_log.add_argument("--employee", help="Employee ID (user log)")

    p_rec = sub.add_parser("reconcile", help="Reconcile completions against anchors")
    p_rec.add_argument("--org", required=True, help="Organization ID")
    p_rec.add_argument("--strict", action="store_true", help="Exit 1 if gaps exist")

    sub.add_parser("poll", help="Run one anchor confirmation pass")

    p_serve = sub.add_parser("serve", help="Run the HTTP API with the anchor poller")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)

    return parser


COMMANDS = {
    "status": cmd_status,
    "add-employee": cmd_add_employee,
    "create-task": cmd_create_task,
    "update-task": cmd_update_task,
    "score": cmd_score,
    "recalculate": cmd_recalculate,
    "insights": cmd_insights,
    "rankings": cmd_rankings,
    "chain-log": cmd_chain_log,
    "reconcile": cmd_reconcile,
    "poll": cmd_poll,
    "serve": cmd_serve,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "chain-log" and not (args.org or args.employee):
        parser.error("chain-log needs --org or --employee")

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
