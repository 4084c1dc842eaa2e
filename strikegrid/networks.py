import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class NetworkProfile:
    name: str
    chain_id: int
    rpc: Tuple[str, ...]
    wss: Tuple[str, ...]
    priority_gwei: str
    moat_ether: str
    relay: Optional[str] = None

    @property
    def uses_relay(self) -> bool:
        return bool(self.relay)


# name -> (env prefix, default profile)
_DEFAULTS: Dict[str, Tuple[str, NetworkProfile]] = {
    "ETHEREUM": (
        "ETH",
        NetworkProfile(
            "ETHEREUM",
            1,
            ("https://eth.llamarpc.com",),
            ("wss://ethereum.publicnode.com",),
            priority_gwei="2.0",
            moat_ether="0.005",
            relay="https://relay.flashbots.net",
        ),
    ),
    "BASE": (
        "BASE",
        NetworkProfile(
            "BASE",
            8453,
            ("https://mainnet.base.org",),
            ("wss://base.publicnode.com",),
            priority_gwei="0.1",
            moat_ether="0.001",
        ),
    ),
    "ARBITRUM": (
        "ARBITRUM",
        NetworkProfile(
            "ARBITRUM",
            42161,
            ("https://arb1.arbitrum.io/rpc",),
            ("wss://arbitrum-one.publicnode.com",),
            priority_gwei="0.1",
            moat_ether="0.002",
        ),
    ),
    "POLYGON": (
        "POLYGON",
        NetworkProfile(
            "POLYGON",
            137,
            ("https://polygon-rpc.com",),
            ("wss://polygon-bor-rpc.publicnode.com",),
            priority_gwei="35.0",
            moat_ether="0.001",
        ),
    ),
}

KNOWN_NETWORKS = tuple(_DEFAULTS)


def _env(env: Mapping[str, str], key: str) -> Tuple[str, ...]:
    val = (env.get(key) or "").strip()
    return (val,) if val else ()


def load_network(name: str, env: Mapping[str, str] | None = None) -> NetworkProfile:
    """Build the profile for `name`, env endpoints first, defaults as fallbacks."""
    env = os.environ if env is None else env
    key = name.strip().upper()
    if key not in _DEFAULTS:
        raise KeyError(f"unknown network {name!r}")
    prefix, base = _DEFAULTS[key]
    rpc = _env(env, f"{prefix}_RPC") + tuple(u for u in base.rpc if u not in _env(env, f"{prefix}_RPC"))
    wss = _env(env, f"{prefix}_WSS") + tuple(u for u in base.wss if u not in _env(env, f"{prefix}_WSS"))
    priority = (env.get(f"{prefix}_PRIORITY_GWEI") or "").strip() or base.priority_gwei
    return NetworkProfile(
        base.name,
        base.chain_id,
        rpc,
        wss,
        priority_gwei=priority,
        moat_ether=base.moat_ether,
        relay=base.relay,
    )


def load_networks(names, env: Mapping[str, str] | None = None) -> Dict[str, NetworkProfile]:
    return {p.name: p for p in (load_network(n, env) for n in names)}
