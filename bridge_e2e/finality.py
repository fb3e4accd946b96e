"""
Finality watcher for destination-chain proposals.

``proposal_executed`` is a single look at the destination bridge's
``ProposalExecution`` logs. ``wait_for_proposal_executed`` repeats that look
on a fixed schedule until it succeeds or the deadline passes; nothing runs
in the background and the caller sees the timeout directly.
"""
import logging
import time
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Union

from eth_abi import decode as abi_decode
from web3 import Web3

from ._rate_limited_log import rate_limited_log
from .client import LogFetcher
from .exceptions import FinalityTimeoutError

logger = logging.getLogger(__name__)

PROPOSAL_EXECUTION_EVENT = "ProposalExecution(uint8,uint64,bytes32)"

DEFAULT_TIMEOUT = 300
DEFAULT_POLL_INTERVAL = 5


class ProposalExecution(NamedTuple):
    origin_domain_id: int
    deposit_nonce: int
    data_hash: bytes
    block_number: int


def _decode_execution(log: Dict[str, Any]) -> ProposalExecution:
    data = log["data"]
    if isinstance(data, str):
        data = Web3.to_bytes(hexstr=data)
    origin, nonce, data_hash = abi_decode(["uint8", "uint64", "bytes32"], bytes(data))
    return ProposalExecution(origin, nonce, data_hash, int(log.get("blockNumber", 0)))


def executed_proposals(client: LogFetcher, bridge_address: str, from_block: int) -> List[ProposalExecution]:
    """Every proposal executed by the bridge since from_block."""
    logs = client.fetch_event_logs(bridge_address, PROPOSAL_EXECUTION_EVENT, from_block)
    return [_decode_execution(log) for log in logs]


def proposal_executed(
    client: LogFetcher,
    bridge_address: str,
    from_block: int,
    origin_domain_id: Optional[int] = None,
    deposit_nonce: Optional[int] = None,
) -> bool:
    """
    Check once whether a matching proposal has been executed.

    Args:
        client: Destination chain log fetcher
        bridge_address: Destination bridge
        from_block: First block to search
        origin_domain_id: Only count proposals from this domain
        deposit_nonce: Only count the proposal with this deposit nonce

    Returns:
        True if a matching ProposalExecution event exists
    """
    for execution in executed_proposals(client, bridge_address, from_block):
        if origin_domain_id is not None and execution.origin_domain_id != origin_domain_id:
            continue
        if deposit_nonce is not None and execution.deposit_nonce != deposit_nonce:
            continue
        return True
    return False


def wait_for_proposal_executed(
    client: LogFetcher,
    bridge_address: str,
    from_block: Optional[int] = None,
    timeout: Union[int, float] = DEFAULT_TIMEOUT,
    poll_interval: Union[int, float] = DEFAULT_POLL_INTERVAL,
    origin_domain_id: Optional[int] = None,
    deposit_nonce: Optional[int] = None,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """
    Block until the destination bridge executes a matching proposal.

    Args:
        client: Destination chain log fetcher
        bridge_address: Destination bridge
        from_block: First block to search; the current head when None
        timeout: Seconds before giving up
        poll_interval: Seconds between checks
        origin_domain_id: Only count proposals from this domain
        deposit_nonce: Only count the proposal with this deposit nonce
        clock: Monotonic clock, injectable for tests

    Raises:
        FinalityTimeoutError: If no matching execution is seen before the deadline
    """
    if from_block is None:
        from_block = client.latest_block()

    deadline = clock() + timeout
    attempt = 0
    while True:
        attempt += 1
        if proposal_executed(client, bridge_address, from_block, origin_domain_id, deposit_nonce):
            logger.info(f"Proposal executed on {bridge_address} after {attempt} check(s)")
            return

        remaining = deadline - clock()
        if remaining <= 0:
            logger.error(f"Proposal on {bridge_address} not executed within {timeout}s")
            raise FinalityTimeoutError(
                f"Proposal not executed on {bridge_address} within {timeout}s",
                bridge_address=bridge_address,
                timeout=timeout,
            )

        rate_limited_log(
            f"Waiting for proposal execution on {bridge_address} since block {from_block}",
            logger_instance=logger,
        )
        time.sleep(min(poll_interval, remaining))
