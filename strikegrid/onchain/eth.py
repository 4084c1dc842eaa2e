import logging
from typing import Any, Dict, Optional

import requests
from eth_account import Account
from web3 import Web3

logger = logging.getLogger("strikegrid.rpc")

RPC_TIMEOUT = 20

# node replies meaning these exact bytes already reached the mempool or a block
DUPLICATE_SUBMISSION = ("already known", "known transaction", "nonce too low")


def local_tx_hash(raw: bytes) -> str:
    return Web3.to_hex(Web3.keccak(raw))


def is_duplicate_submission(exc) -> bool:
    msg = str(exc).lower()
    return any(p in msg for p in DUPLICATE_SUBMISSION)


def get_eth_client(url: str) -> Web3:
    return Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": RPC_TIMEOUT}))


def raw_bytes(signed) -> bytes:
    return (
        getattr(signed, "raw_transaction", None)
        or getattr(signed, "rawTransaction", None)
        or signed
    )


class ChainClient:
    """Blocking JSON-RPC access for one network and one signing key."""

    def __init__(self, rpc_url: str, private_key: str, fallback_url: Optional[str] = None):
        self.rpc_url = rpc_url
        self.fallback_url = fallback_url or rpc_url
        self.w3 = get_eth_client(rpc_url)
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def get_balance(self) -> int:
        return int(self.w3.eth.get_balance(self.address))

    def gas_price(self) -> Optional[int]:
        try:
            return int(self.w3.eth.gas_price)
        except (ValueError, TypeError):
            return None

    def block_number(self) -> int:
        return int(self.w3.eth.block_number)

    def nonce(self) -> int:
        return int(self.w3.eth.get_transaction_count(self.address, "pending"))

    def estimate_call(self, tx: Dict[str, Any]) -> int:
        """Dry-run `tx`; raises when the contract rejects it."""
        return int(self.w3.eth.estimate_gas(tx))

    def sign(self, tx: Dict[str, Any]) -> bytes:
        return bytes(raw_bytes(self._account.sign_transaction(tx)))

    def broadcast(self, raw: bytes) -> str:
        return Web3.to_hex(self.w3.eth.send_raw_transaction(raw))

    def wait_for_receipt(self, tx_hash: str, timeout: float) -> Dict[str, Any]:
        return dict(self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout))

    def send_raw_direct(self, raw: bytes) -> None:
        """Second delivery channel: plain JSON-RPC POST of the same signed bytes."""
        if not self.fallback_url:
            return
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_sendRawTransaction",
            "params": [Web3.to_hex(raw)],
        }
        r = requests.post(self.fallback_url, json=payload, timeout=RPC_TIMEOUT)
        r.raise_for_status()
