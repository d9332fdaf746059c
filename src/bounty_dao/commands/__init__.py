"""Command handlers for the bounty-dao CLI."""

from bounty_dao.commands.build_intent import run_build_intent
from bounty_dao.commands.evaluate_escrow import run_evaluate_escrow
from bounty_dao.commands.evaluate_governance import run_evaluate_governance
from bounty_dao.commands.inspect_escrow import run_inspect_escrow
from bounty_dao.commands.inspect_governance import run_inspect_governance
from bounty_dao.commands.proposal_history import run_proposal_history
from bounty_dao.commands.time_source_check import run_time_source_check

__all__ = [
    "run_build_intent",
    "run_evaluate_escrow",
    "run_evaluate_governance",
    "run_inspect_escrow",
    "run_inspect_governance",
    "run_proposal_history",
    "run_time_source_check",
]
