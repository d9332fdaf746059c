from __future__ import annotations

import json
from argparse import ArgumentParser, Namespace
from collections.abc import Callable, Sequence

from bounty_dao.commands import (
    run_build_intent,
    run_evaluate_escrow,
    run_evaluate_governance,
    run_inspect_escrow,
    run_inspect_governance,
    run_proposal_history,
    run_time_source_check,
)
from bounty_dao.config import AppSettings, get_settings
from bounty_dao.domain.escrow_lifecycle import ContractAction, EscrowAction
from bounty_dao.domain.governance_lifecycle import GovernanceAction
from bounty_dao.domain.proposals import ProposalKind, VoteSupport
from bounty_dao.observability.logging import STDERR, configure_logging
from bounty_dao.types import CommandResult, CommandStatus

CommandHandler = Callable[[Namespace, AppSettings], CommandResult]

COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "evaluate-escrow": run_evaluate_escrow,
    "evaluate-governance": run_evaluate_governance,
    "build-intent": run_build_intent,
    "inspect-escrow": run_inspect_escrow,
    "inspect-governance": run_inspect_governance,
    "proposal-history": run_proposal_history,
    "time-source-check": run_time_source_check,
}

ESCROW_ACTION_CHOICES = [action.value for action in EscrowAction] + [
    action.value for action in ContractAction
]
GOVERNANCE_ACTION_CHOICES = [action.value for action in GovernanceAction]


def _add_caller_arguments(parser: ArgumentParser) -> None:
    parser.add_argument("--caller", default="")
    parser.add_argument("--contract", default="")
    parser.add_argument("--admin", action="store_true")
    parser.add_argument("--network-mismatch", action="store_true")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="bounty-dao", description="Bounty DAO proposal lifecycle CLI")
    parser.add_argument("--json", action="store_true", help="emit machine-readable JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    escrow = subparsers.add_parser("evaluate-escrow")
    escrow.add_argument("--proposal-id", required=True)
    escrow.add_argument("--status", required=True)
    escrow.add_argument("--start-time", required=True)
    escrow.add_argument("--end-time", required=True)
    escrow.add_argument("--topic-count", default="1")
    escrow.add_argument("--winner-topic-id", default=None)
    escrow.add_argument("--submit-deadline", default=None)
    escrow.add_argument("--challenge-window-end", default=None)
    escrow.add_argument("--current-time", default=None)
    escrow.add_argument("--allowance", default="0")
    escrow.add_argument("--required-bond", default=None)
    escrow.add_argument("--creator-deposit", default=None)
    escrow.add_argument("--paused", action="store_true")
    escrow.add_argument("--action", choices=ESCROW_ACTION_CHOICES, default=None)
    _add_caller_arguments(escrow)

    governance = subparsers.add_parser("evaluate-governance")
    governance.add_argument("--proposal-id", required=True)
    governance.add_argument("--state", required=True)
    governance.add_argument("--snapshot-block", required=True)
    governance.add_argument("--deadline-block", required=True)
    governance.add_argument("--for-votes", default="0")
    governance.add_argument("--against-votes", default="0")
    governance.add_argument("--abstain-votes", default="0")
    governance.add_argument("--quorum", default="0")
    governance.add_argument("--eta", default=None)
    governance.add_argument("--current-block", default=None)
    governance.add_argument("--current-time", default=None)
    governance.add_argument("--voting-power", default="0")
    governance.add_argument("--has-voted", action="store_true")
    governance.add_argument("--action", choices=GOVERNANCE_ACTION_CHOICES, default=None)
    _add_caller_arguments(governance)

    intent = subparsers.add_parser("build-intent")
    intent.add_argument(
        "--action",
        required=True,
        choices=ESCROW_ACTION_CHOICES + GOVERNANCE_ACTION_CHOICES,
    )
    intent.add_argument("--proposal-id", default="0")
    intent.add_argument("--topic-id", default=None)
    intent.add_argument("--amount", default=None)
    intent.add_argument("--youtube-url", default="")
    intent.add_argument("--video-id", default="")
    intent.add_argument("--pinned-code", default="")
    intent.add_argument("--reason", default="")
    intent.add_argument("--evidence", default="")
    approve_group = intent.add_mutually_exclusive_group(required=False)
    approve_group.add_argument("--approve", dest="approve", action="store_true", default=None)
    approve_group.add_argument("--reject", dest="approve", action="store_false")
    intent.add_argument(
        "--support",
        type=int,
        choices=[int(support) for support in VoteSupport],
        default=None,
    )
    intent.add_argument("--delegatee", default="")
    intent.add_argument("--target", action="append", default=[])
    intent.add_argument("--value", action="append", default=[])
    intent.add_argument("--calldata", action="append", default=[])
    intent.add_argument("--description", default="")
    intent.add_argument("--topic-owner", action="append", default=[])
    intent.add_argument("--topic-content", action="append", default=[])
    intent.add_argument("--metadata", default="")
    intent.add_argument("--start-time", default=None)
    intent.add_argument("--end-time", default=None)

    inspect_escrow = subparsers.add_parser("inspect-escrow")
    inspect_escrow.add_argument("--proposal-id", required=True)
    inspect_escrow.add_argument("--caller", default="")
    inspect_escrow.add_argument("--nonce", default="")
    inspect_escrow.add_argument("--action", choices=ESCROW_ACTION_CHOICES, default=None)

    inspect_governance = subparsers.add_parser("inspect-governance")
    inspect_governance.add_argument("--proposal-id", required=True)
    inspect_governance.add_argument("--caller", default="")
    inspect_governance.add_argument("--action", choices=GOVERNANCE_ACTION_CHOICES, default=None)

    history = subparsers.add_parser("proposal-history")
    history.add_argument("--proposal-id", required=True)
    history.add_argument(
        "--kind",
        choices=[kind.value for kind in ProposalKind],
        default=ProposalKind.BOUNTY.value,
    )

    subparsers.add_parser("time-source-check")

    return parser


def _emit_result(result: CommandResult, *, as_json: bool) -> None:
    if as_json:
        print(result.to_json())
        return

    print(f"{result.command}: {result.status.value}")
    if result.details:
        print(json.dumps(result.details, indent=2, sort_keys=True))


def entrypoint(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    settings = get_settings()
    # stdout carries the command result; diagnostics go to stderr.
    configure_logging(settings.log_level, stream=STDERR)

    handler = COMMAND_HANDLERS[str(args.command)]
    result = handler(args, settings)
    _emit_result(result, as_json=bool(args.json))
    return 1 if result.status == CommandStatus.FAILED else 0


if __name__ == "__main__":
    raise SystemExit(entrypoint())
