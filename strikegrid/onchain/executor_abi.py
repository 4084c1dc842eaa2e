from typing import Sequence

from eth_abi import encode
from web3 import Web3

EXECUTE_SIGNATURE = "executeComplexPath(string[],uint256)"


def selector() -> bytes:
    return bytes(Web3.keccak(text=EXECUTE_SIGNATURE)[:4])


def encode_execute(path: Sequence[str], amount: int) -> str:
    """Calldata for executeComplexPath(path, amount) as 0x-hex."""
    body = encode(["string[]", "uint256"], [list(path), int(amount)])
    return Web3.to_hex(selector() + body)


def strike_path(base_asset: str, ticker: str) -> list[str]:
    return [base_asset, ticker, base_asset]


def build_call(sender: str, executor: str, path: Sequence[str], amount: int, flash: bool) -> dict:
    """Call fields shared by the dry-run and the real transaction.

    Flash tiers borrow inside the call, so they carry no value.
    """
    return {
        "from": sender,
        "to": Web3.to_checksum_address(executor),
        "data": encode_execute(path, amount),
        "value": 0 if flash else int(amount),
    }
