from __future__ import annotations

from typing import Any

from eth_abi.exceptions import DecodingError

from bounty_dao.chain import abi
from bounty_dao.chain.errors import ChainRpcError, ReadError, ReadErrorKind
from bounty_dao.chain.rpc_client import JsonRpcClient
from bounty_dao.domain.proposals import BountyProposal
from bounty_dao.observability.logging import get_logger


class EscrowReader:
    """Snapshot reads against the bounty escrow and its bond token."""

    def __init__(self, client: JsonRpcClient, escrow_address: str, token_address: str) -> None:
        self._client = client
        self.escrow_address = escrow_address
        self.token_address = token_address
        self._logger = get_logger("escrow_reader")

    async def _call(self, to: str, spec: abi.FunctionSpec, *args: Any) -> tuple[Any, ...]:
        data = await self._client.eth_call(to, spec.encode_call(*args))
        try:
            return spec.decode_output(data)
        except DecodingError as exc:
            raise ChainRpcError(
                ReadErrorKind.NOT_FOUND, f"{spec.name}: malformed return data"
            ) from exc

    async def read_proposal_snapshot(self, proposal_id: int) -> BountyProposal | ReadError:
        try:
            data = await self._client.eth_call(
                self.escrow_address, abi.GET_PROPOSAL.encode_call(proposal_id)
            )
            proposal = abi.decode_bounty_proposal(proposal_id, data)
        except ChainRpcError as exc:
            self._logger.warning(
                "escrow_snapshot_read_failed",
                proposal_id=proposal_id,
                kind=exc.kind.value,
                error=exc.message,
            )
            return exc.to_read_error()
        except (DecodingError, ValueError) as exc:
            return ReadError(ReadErrorKind.NOT_FOUND, f"proposal {proposal_id}: {exc}")

        # Unknown ids read back as an all-zero struct.
        if proposal.start_time == 0 and proposal.topic_count == 0:
            return ReadError(ReadErrorKind.NOT_FOUND, f"proposal {proposal_id} does not exist")
        return proposal

    async def read_allowance(self, owner: str, spender: str | None = None) -> int | ReadError:
        try:
            (amount,) = await self._call(
                self.token_address, abi.ALLOWANCE, owner, spender or self.escrow_address
            )
        except ChainRpcError as exc:
            return exc.to_read_error()
        return amount

    async def read_topic_owner(self, proposal_id: int, topic_id: int) -> str | ReadError:
        try:
            (owner,) = await self._call(self.escrow_address, abi.GET_TOPIC, proposal_id, topic_id)
        except ChainRpcError as exc:
            return exc.to_read_error()
        return owner

    async def read_owner(self) -> str | ReadError:
        try:
            (owner,) = await self._call(self.escrow_address, abi.OWNER)
        except ChainRpcError as exc:
            return exc.to_read_error()
        return owner

    async def read_paused(self) -> bool | ReadError:
        try:
            (paused,) = await self._call(self.escrow_address, abi.PAUSED)
        except ChainRpcError as exc:
            return exc.to_read_error()
        return bool(paused)

    async def read_creator_deposit(self) -> int | ReadError:
        try:
            (deposit,) = await self._call(self.escrow_address, abi.CREATOR_DEPOSIT)
        except ChainRpcError as exc:
            return exc.to_read_error()
        return deposit
