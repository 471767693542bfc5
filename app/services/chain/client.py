"""
EVM chain client wrapping web3.py HTTPProvider.
One instance per process and network; handlers receive it through app.api.deps.
All RPC failures (timeout, connection, node error, open breaker) surface as
InfrastructureError so they are never mistaken for an invalid transaction.
"""
import logging
import time
from typing import Any, Callable, Mapping

import pybreaker
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from app.core.errors import InfrastructureError
from app.utils.metrics import chain_rpc_duration_seconds, chain_rpc_requests_total


logger = logging.getLogger(__name__)

# Minimal ERC-20 ABI: only what verification needs
ERC20_ABI = [
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "from", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
            {"indexed": False, "internalType": "uint256", "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
]

RPC_ERRORS = (RequestException, Web3Exception, ValueError, OSError)


class ChainClient:
    """Sync chain data provider: receipts, transactions, token decimals."""

    def __init__(
        self,
        w3: Web3,
        network: str,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self.w3 = w3
        self.network = network
        self._breaker = breaker

    @classmethod
    def from_url(
        cls,
        rpc_url: str,
        network: str,
        timeout: float,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> "ChainClient":
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        return cls(w3, network, breaker=breaker)

    def _call(self, method: str, func: Callable[..., Any], *args: Any) -> Any:
        start = time.time()
        try:
            if self._breaker is not None:
                result = self._breaker.call(func, *args)
            else:
                result = func(*args)
        except pybreaker.CircuitBreakerError as e:
            chain_rpc_requests_total.labels(method=method, status="breaker_open").inc()
            logger.warning("chain_rpc_breaker_open", extra={"method": method})
            raise InfrastructureError("Chain RPC temporarily unavailable") from e
        except RPC_ERRORS as e:
            chain_rpc_requests_total.labels(method=method, status="error").inc()
            logger.error(
                "chain_rpc_error",
                extra={"method": method, "network": self.network, "error": f"{type(e).__name__}: {e}"},
            )
            raise InfrastructureError(f"Chain RPC {method} failed: {type(e).__name__}") from e
        chain_rpc_requests_total.labels(method=method, status="success").inc()
        chain_rpc_duration_seconds.labels(method=method).observe(time.time() - start)
        return result

    # Missing transactions are a normal answer, not a breaker failure

    def _fetch_receipt(self, tx_hash: str) -> Mapping[str, Any] | None:
        try:
            return self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    def _fetch_transaction(self, tx_hash: str) -> Mapping[str, Any] | None:
        try:
            return self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return None

    def _fetch_decimals(self, token_address: str) -> int:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
        return int(contract.functions.decimals().call())

    def get_receipt(self, tx_hash: str) -> Mapping[str, Any] | None:
        return self._call("eth_getTransactionReceipt", self._fetch_receipt, tx_hash)

    def get_transaction(self, tx_hash: str) -> Mapping[str, Any] | None:
        return self._call("eth_getTransactionByHash", self._fetch_transaction, tx_hash)

    def token_decimals(self, token_address: str) -> int:
        return self._call("eth_call_decimals", self._fetch_decimals, token_address)
