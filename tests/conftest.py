import threading
import time

import pytest

from strikegrid.config import Settings

EXECUTOR = "0x" + "22" * 20


class FakeChain:
    """In-memory stand-in for ChainClient."""

    address = "0x" + "11" * 20

    def __init__(
        self,
        balance=10**18,
        gas=10**9,
        reject=None,
        receipt_status=1,
        receipt_error=None,
        broadcast_error=None,
        direct_error=None,
        nonce_error=None,
        sign_error=None,
        settle_delay=0.0,
    ):
        self.balance = balance
        self.gas = gas
        self.reject = reject or (lambda tx: False)
        self.receipt_status = receipt_status
        self.receipt_error = receipt_error
        self.broadcast_error = broadcast_error
        self.direct_error = direct_error
        self.nonce_error = nonce_error
        self.sign_error = sign_error
        self.settle_delay = settle_delay
        self.estimates = []
        self.signed = []
        self.sent = []
        self.direct = []
        self.waited = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def get_balance(self):
        return self.balance

    def gas_price(self):
        return self.gas

    def block_number(self):
        return 100

    def nonce(self):
        if self.nonce_error:
            raise self.nonce_error
        return 7

    def estimate_call(self, tx):
        self.estimates.append(tx)
        if self.reject(tx):
            raise ValueError("execution reverted")
        return 210_000

    def sign(self, tx):
        if self.sign_error:
            raise self.sign_error
        self.signed.append(tx)
        return b"\x02signed"

    def broadcast(self, raw):
        if self.broadcast_error:
            raise self.broadcast_error
        self.sent.append(raw)
        return "0xabc"

    def send_raw_direct(self, raw):
        self.direct.append(raw)
        if self.direct_error:
            raise self.direct_error

    def wait_for_receipt(self, tx_hash, timeout):
        self.waited.append(tx_hash)
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.settle_delay)
            if self.receipt_error:
                raise self.receipt_error
            return {"status": self.receipt_status, "transactionHash": tx_hash}
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def cfg():
    return Settings(
        private_key="0x" + "01" * 32,
        executor_address=EXECUTOR,
        trigger="interval",
        cycle_interval=0.01,
        reconnect_delay=0.01,
        scan_interval=0.01,
        restart_base_delay=0.01,
        restart_max_delay=0.02,
        min_reserve_wei=10**15,
    )
