from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from typing import Any

import httpx
import pytest
import structlog
from eth_abi import encode

from bounty_dao.chain import abi
from bounty_dao.chain.abi import EventSpec, FunctionSpec
from bounty_dao.chain.rpc_client import JsonRpcClient

ESCROW = "0x1111111111111111111111111111111111111111"
TOKEN = "0x2222222222222222222222222222222222222222"
GOVERNOR = "0x3333333333333333333333333333333333333333"
ALICE = "0x4444444444444444444444444444444444444444"
OWNER = "0x5555555555555555555555555555555555555555"
BOB = "0x6666666666666666666666666666666666666666"

REVERT = {"code": 3, "message": "execution reverted"}


class FakeChain:
    """In-memory JSON-RPC node served through ``httpx.MockTransport``."""

    def __init__(
        self,
        *,
        chain_id: int = 84532,
        block_number: int = 1_000,
        timestamp: int = 1_700_000_000,
    ) -> None:
        self.chain_id = chain_id
        self.block_number = block_number
        self.timestamp = timestamp
        self.block_timestamps: dict[int, int] = {}
        self.calls: dict[tuple[str, bytes], dict[str, Any]] = {}
        self.logs: list[dict[str, Any]] = []
        self.failing_ranges: set[tuple[int, int]] = set()
        self.methods: list[str] = []
        self.down = False

    def on_call(
        self,
        address: str,
        spec: FunctionSpec,
        *args: Any,
        returns: Sequence[Any] | None = None,
        revert: bool = False,
    ) -> None:
        key = (address.lower(), spec.encode_call(*args))
        if revert:
            self.calls[key] = {"error": REVERT}
        else:
            data = encode(list(spec.outputs), list(returns or ()))
            self.calls[key] = {"result": "0x" + data.hex()}

    def add_log(
        self,
        address: str,
        spec: EventSpec,
        *,
        block_number: int,
        log_index: int,
        transaction_hash: str = "0x" + "ab" * 32,
        **args: Any,
    ) -> None:
        topics = [spec.topic]
        plain_types: list[str] = []
        plain_values: list[Any] = []
        for item in spec.inputs:
            if item.indexed:
                topics.append("0x" + encode([item.type], [args[item.name]]).hex())
            else:
                plain_types.append(item.type)
                plain_values.append(args[item.name])
        self.logs.append(
            {
                "address": address.lower(),
                "topics": topics,
                "data": "0x" + encode(plain_types, plain_values).hex(),
                "blockNumber": hex(block_number),
                "logIndex": hex(log_index),
                "transactionHash": transaction_hash,
            }
        )

    def _block(self, tag: str) -> dict[str, str] | None:
        if tag == "latest":
            return {"number": hex(self.block_number), "timestamp": hex(self.timestamp)}
        number = int(tag, 16)
        if number > self.block_number:
            return None
        timestamp = self.block_timestamps.get(number)
        if timestamp is None:
            timestamp = self.timestamp - (self.block_number - number) * 2
        return {"number": hex(number), "timestamp": hex(timestamp)}

    def _logs(self, query: dict[str, Any]) -> dict[str, Any]:
        from_block = int(query["fromBlock"], 16)
        to_block = int(query["toBlock"], 16)
        if (from_block, to_block) in self.failing_ranges:
            return {"error": {"code": -32005, "message": "query returned more than 10000 results"}}

        def topic_matches(wanted: Any, actual: str | None) -> bool:
            if wanted is None:
                return True
            if actual is None:
                return False
            if isinstance(wanted, list):
                return actual.lower() in [item.lower() for item in wanted]
            return actual.lower() == wanted.lower()

        matched = []
        for log in self.logs:
            if log["address"] != query["address"].lower():
                continue
            if not from_block <= int(log["blockNumber"], 16) <= to_block:
                continue
            topics = log["topics"]
            wanted = query.get("topics") or []
            if all(
                topic_matches(item, topics[index] if index < len(topics) else None)
                for index, item in enumerate(wanted)
            ):
                matched.append(log)
        return {"result": matched}

    def _dispatch(self, method: str, params: list[Any]) -> dict[str, Any]:
        if method == "eth_chainId":
            return {"result": hex(self.chain_id)}
        if method == "eth_blockNumber":
            return {"result": hex(self.block_number)}
        if method == "eth_getBlockByNumber":
            return {"result": self._block(params[0])}
        if method == "eth_call":
            call = params[0]
            key = (call["to"].lower(), bytes.fromhex(call["data"][2:]))
            return self.calls.get(key, {"error": REVERT})
        if method == "eth_getLogs":
            return self._logs(params[0])
        return {"error": {"code": -32601, "message": f"method {method} not found"}}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            return httpx.Response(503, text="service unavailable")
        payload = json.loads(request.content)
        self.methods.append(payload["method"])
        body = {"jsonrpc": "2.0", "id": payload["id"]}
        body.update(self._dispatch(payload["method"], payload["params"]))
        return httpx.Response(200, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> JsonRpcClient:
        return JsonRpcClient(httpx.AsyncClient(transport=self.transport()), "http://rpc.test")


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO32 = b"\x00" * 32


def seed_bounty(
    chain: FakeChain,
    proposal_id: int,
    *,
    status: int,
    start_time: int,
    end_time: int,
    topic_count: int = 3,
    winner_topic_id: int = 1,
    submit_deadline: int = 0,
    challenge_window_end: int = 0,
    challenger: str = ZERO_ADDRESS,
    total_pool: int = 10**21,
) -> None:
    values = [
        start_time,
        end_time,
        topic_count,
        status,
        winner_topic_id,
        total_pool,
        False,
        submit_deadline,
        total_pool // 10,
        total_pool - total_pool // 10,
        False,
        ZERO32,
        ZERO32,
        ZERO32,
        challenge_window_end,
        False,
        challenger,
        ZERO32,
        ZERO32,
        False,
    ]
    chain.on_call(ESCROW, abi.GET_PROPOSAL, proposal_id, returns=values)


def seed_governance(
    chain: FakeChain,
    proposal_id: int,
    *,
    state: int,
    snapshot: int,
    deadline: int,
    votes: tuple[int, int, int] = (0, 0, 0),
    quorum: int | None = None,
    description: str = "Fund the next bounty round",
) -> None:
    chain.on_call(GOVERNOR, abi.STATE, proposal_id, returns=[state])
    chain.on_call(GOVERNOR, abi.PROPOSAL_SNAPSHOT, proposal_id, returns=[snapshot])
    chain.on_call(GOVERNOR, abi.PROPOSAL_DEADLINE, proposal_id, returns=[deadline])
    chain.on_call(GOVERNOR, abi.PROPOSAL_VOTES, proposal_id, returns=list(votes))
    if quorum is not None:
        chain.on_call(GOVERNOR, abi.QUORUM, snapshot, returns=[quorum])
    chain.add_log(
        GOVERNOR,
        abi.GOVERNOR_PROPOSAL_CREATED,
        block_number=max(snapshot - 1, 0),
        log_index=0,
        proposalId=proposal_id,
        proposer=ALICE,
        targets=[TOKEN],
        values=[0],
        signatures=[""],
        calldatas=[b""],
        voteStart=snapshot,
        voteEnd=deadline,
        description=description,
    )


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    # Handlers may bind the logger to a capture stream that closes after the test.
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()
