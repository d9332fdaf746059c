from __future__ import annotations

import asyncio
from typing import Any

from eth_abi.exceptions import DecodingError

from bounty_dao.chain import abi
from bounty_dao.chain.errors import ChainRpcError, ReadError, ReadErrorKind
from bounty_dao.chain.log_fetcher import EventFilter, LogFetcher
from bounty_dao.chain.rpc_client import JsonRpcClient
from bounty_dao.domain.events import ChainEvent, find_creation_event
from bounty_dao.domain.proposals import GovernanceProposal, GovernanceState
from bounty_dao.observability.logging import get_logger


class GovernorReader:
    """Snapshot reads against an OpenZeppelin-style governor and its vote token."""

    def __init__(
        self,
        client: JsonRpcClient,
        governor_address: str,
        token_address: str,
        log_fetcher: LogFetcher | None = None,
        start_block: int = 0,
    ) -> None:
        self._client = client
        self.governor_address = governor_address
        self.token_address = token_address
        self._log_fetcher = log_fetcher
        self._start_block = start_block
        self._logger = get_logger("governor_reader")

    async def _call(self, to: str, spec: abi.FunctionSpec, *args: Any) -> tuple[Any, ...]:
        data = await self._client.eth_call(to, spec.encode_call(*args))
        try:
            return spec.decode_output(data)
        except DecodingError as exc:
            raise ChainRpcError(
                ReadErrorKind.NOT_FOUND, f"{spec.name}: malformed return data"
            ) from exc

    async def _optional(self, spec: abi.FunctionSpec, *args: Any) -> int | None:
        # quorum() and proposalEta() are not implemented by every governor.
        try:
            (value,) = await self._call(self.governor_address, spec, *args)
        except ChainRpcError:
            return None
        return value

    async def find_creation_event(self, proposal_id: int) -> ChainEvent | None:
        if self._log_fetcher is None:
            return None
        batch = await self._log_fetcher.fetch_events(
            EventFilter(
                address=self.governor_address,
                events=(abi.GOVERNOR_PROPOSAL_CREATED,),
                from_block=self._start_block,
            )
        )
        return find_creation_event(batch.events, proposal_id)

    async def read_governance_snapshot(
        self,
        proposal_id: int,
        creation_event: ChainEvent | None = None,
    ) -> GovernanceProposal | ReadError:
        governor = self.governor_address
        try:
            (state,), (snapshot,), (deadline,), (against, for_, abstain) = await asyncio.gather(
                self._call(governor, abi.STATE, proposal_id),
                self._call(governor, abi.PROPOSAL_SNAPSHOT, proposal_id),
                self._call(governor, abi.PROPOSAL_DEADLINE, proposal_id),
                self._call(governor, abi.PROPOSAL_VOTES, proposal_id),
            )
        except ChainRpcError as exc:
            self._logger.warning(
                "governance_snapshot_read_failed",
                proposal_id=str(proposal_id),
                kind=exc.kind.value,
                error=exc.message,
            )
            return exc.to_read_error()

        try:
            governance_state = GovernanceState(state)
        except ValueError:
            return ReadError(ReadErrorKind.NOT_FOUND, f"unknown governor state {state}")

        quorum, eta = await asyncio.gather(
            self._optional(abi.QUORUM, snapshot),
            self._optional(abi.PROPOSAL_ETA, proposal_id),
        )
        args = creation_event.args if creation_event is not None else {}

        proposal = GovernanceProposal(
            id=proposal_id,
            state=governance_state,
            snapshot_block=snapshot,
            deadline_block=deadline,
            for_votes=for_,
            against_votes=against,
            abstain_votes=abstain,
            quorum=quorum or 0,
            proposer=args.get("proposer"),
            targets=tuple(args.get("targets", ())),
            values=tuple(args.get("values", ())),
            signatures=tuple(args.get("signatures", ())),
            calldatas=tuple(args.get("calldatas", ())),
            description=args.get("description", ""),
            vote_start=args.get("voteStart"),
            vote_end=args.get("voteEnd"),
            eta=eta or None,
        )
        try:
            proposal.ensure_canonical()
        except ValueError as exc:
            return ReadError(ReadErrorKind.NOT_FOUND, f"proposal {proposal_id}: {exc}")
        return proposal

    async def read_has_voted(self, proposal_id: int, account: str) -> bool | ReadError:
        try:
            (voted,) = await self._call(self.governor_address, abi.HAS_VOTED, proposal_id, account)
        except ChainRpcError as exc:
            return exc.to_read_error()
        return voted

    async def read_voting_power(
        self,
        account: str,
        snapshot_block: int | None = None,
    ) -> int | ReadError:
        """Votes at the proposal snapshot, or current votes when none is given."""
        try:
            if snapshot_block is None:
                (votes,) = await self._call(self.token_address, abi.GET_VOTES, account)
            else:
                (votes,) = await self._call(
                    self.token_address, abi.GET_PAST_VOTES, account, snapshot_block
                )
        except ChainRpcError as exc:
            return exc.to_read_error()
        return votes

    async def read_delegate(self, account: str) -> str | ReadError:
        try:
            (delegatee,) = await self._call(self.token_address, abi.DELEGATES, account)
        except ChainRpcError as exc:
            return exc.to_read_error()
        return delegatee
