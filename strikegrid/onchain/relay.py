import json
import logging
from typing import Any, Dict, List, Optional

import requests
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

logger = logging.getLogger("strikegrid.relay")


class RelayError(RuntimeError):
    pass


class RelayClient:
    """Private bundle relay speaking eth_callBundle / eth_sendBundle."""

    def __init__(self, url: str, auth_key: Optional[str] = None, timeout: float = 10):
        self.url = url
        self.timeout = timeout
        self._auth = Account.from_key(auth_key) if auth_key else Account.create()

    def _headers(self, body: str) -> Dict[str, str]:
        digest = Web3.to_hex(Web3.keccak(text=body))
        signed = self._auth.sign_message(encode_defunct(text=digest))
        return {
            "Content-Type": "application/json",
            "X-Flashbots-Signature": f"{self._auth.address}:{Web3.to_hex(signed.signature)}",
        }

    def _call(self, method: str, params: List[Any]) -> Dict[str, Any]:
        body = json.dumps({"jsonrpc": "2.0", "id": 1, "method": method, "params": params})
        r = requests.post(self.url, data=body, headers=self._headers(body), timeout=self.timeout)
        if r.status_code != 200:
            raise RelayError(f"HTTP {r.status_code} {r.text}")
        data = r.json()
        if data.get("error"):
            return {"error": data["error"]}
        return data.get("result") or {}

    def simulate(self, raw_txs: List[bytes], block: int) -> Dict[str, Any]:
        return self._call(
            "eth_callBundle",
            [
                {
                    "txs": [Web3.to_hex(tx) for tx in raw_txs],
                    "blockNumber": hex(block),
                    "stateBlockNumber": "latest",
                }
            ],
        )

    def send_bundle(self, raw_txs: List[bytes], block: int) -> Dict[str, Any]:
        res = self._call(
            "eth_sendBundle",
            [{"txs": [Web3.to_hex(tx) for tx in raw_txs], "blockNumber": hex(block)}],
        )
        if res.get("error"):
            raise RelayError(str(res["error"]))
        return res


def first_revert(sim: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for res in sim.get("results") or []:
        if res.get("error") or res.get("revert"):
            return res
    return None


def simulation_ok(sim: Dict[str, Any]) -> bool:
    return not sim.get("error") and first_revert(sim) is None


def connect_relay(url: Optional[str], name: str) -> Optional[RelayClient]:
    if not url:
        return None
    try:
        client = RelayClient(url)
    except (ValueError, TypeError) as e:
        logger.error(f"[{name}] relay error: {e}")
        return None
    logger.info(f"[{name}] relay active")
    return client
