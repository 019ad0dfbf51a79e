"""
Round Resolver - Centralized Configuration
Single source of truth for supported chains, RPC endpoints and resolver tunables
"""
import os
from dataclasses import dataclass, fields
from typing import Dict, List, Optional


# ========== RPC ENDPOINTS (from environment) ==========
# A per-chain env var is tried first, public endpoints follow.
def _build_rpcs(env_key: str, public: List[str]) -> List[str]:
    rpcs = []
    url = os.environ.get(env_key, '').strip()
    if url:
        rpcs.append(url)
    rpcs.extend(u for u in public if u not in rpcs)
    return rpcs


# ========== MULTI-CHAIN CONFIGURATION ==========
CHAINS = {
    'mainnet': {
        'name': 'Ethereum',
        'chain_id': 1,
        'rpc': _build_rpcs('ETHEREUM_MAINNET_RPC_URL', [
            "https://ethereum.publicnode.com",
            "https://eth.llamarpc.com",
            "https://cloudflare-eth.com",
            "https://rpc.ankr.com/eth",
        ]),
        'explorer': 'https://etherscan.io',
    },
    'sepolia': {
        'name': 'Sepolia',
        'chain_id': 11155111,
        'rpc': _build_rpcs('SEPOLIA_RPC_URL', [
            "https://ethereum-sepolia.publicnode.com",
            "https://rpc.sepolia.org",
        ]),
        'explorer': 'https://sepolia.etherscan.io',
    },
    'arbitrum': {
        'name': 'Arbitrum',
        'chain_id': 42161,
        'rpc': _build_rpcs('ARBITRUM_MAINNET_RPC_URL', [
            "https://arb1.arbitrum.io/rpc",
            "https://arbitrum.llamarpc.com",
            "https://arbitrum-one.publicnode.com",
        ]),
        'explorer': 'https://arbiscan.io',
    },
    'bsc': {
        'name': 'BNB Smart Chain',
        'chain_id': 56,
        'rpc': _build_rpcs('BSC_MAINNET_RPC_URL', [
            "https://bsc-dataseed.bnbchain.org",
            "https://bsc.publicnode.com",
        ]),
        'explorer': 'https://bscscan.com',
    },
    'polygon': {
        'name': 'Polygon',
        'chain_id': 137,
        'rpc': _build_rpcs('POLYGON_MAINNET_RPC_URL', [
            "https://polygon-rpc.com",
            "https://polygon-bor.publicnode.com",
        ]),
        'explorer': 'https://polygonscan.com',
    },
    'avalanche': {
        'name': 'Avalanche C-Chain',
        'chain_id': 43114,
        'rpc': _build_rpcs('AVALANCHE_MAINNET_RPC_URL', [
            "https://api.avax.network/ext/bc/C/rpc",
            "https://avalanche-c-chain.publicnode.com",
        ]),
        'explorer': 'https://snowtrace.io',
    },
    'fantom': {
        'name': 'Fantom',
        'chain_id': 250,
        'rpc': _build_rpcs('FANTOM_MAINNET_RPC_URL', [
            "https://rpc.ftm.tools",
            "https://fantom.publicnode.com",
        ]),
        'explorer': 'https://ftmscan.com',
    },
    'moonbeam': {
        'name': 'Moonbeam',
        'chain_id': 1284,
        'rpc': _build_rpcs('MOONBEAM_MAINNET_RPC_URL', [
            "https://rpc.api.moonbeam.network",
        ]),
        'explorer': 'https://moonscan.io',
    },
    'moonriver': {
        'name': 'Moonriver',
        'chain_id': 1285,
        'rpc': _build_rpcs('MOONRIVER_MAINNET_RPC_URL', [
            "https://rpc.api.moonriver.moonbeam.network",
        ]),
        'explorer': 'https://moonriver.moonscan.io',
    },
    'harmonyOne': {
        'name': 'Harmony One',
        'chain_id': 1666600000,
        'rpc': _build_rpcs('HARMONY_ONE_MAINNET_RPC_URL', [
            "https://api.harmony.one",
        ]),
        'explorer': 'https://explorer.harmony.one',
    },
    'optimism': {
        'name': 'Optimism',
        'chain_id': 10,
        'rpc': _build_rpcs('OPTIMISM_MAINNET_RPC_URL', [
            "https://mainnet.optimism.io",
            "https://optimism.llamarpc.com",
            "https://optimism.publicnode.com",
        ]),
        'explorer': 'https://optimistic.etherscan.io',
    },
    'metis': {
        'name': 'Metis Andromeda',
        'chain_id': 1088,
        'rpc': _build_rpcs('METIS_MAINNET_RPC_URL', [
            "https://andromeda.metis.io/?owner=1088",
        ]),
        'explorer': 'https://andromeda-explorer.metis.io',
    },
    'base': {
        'name': 'Base',
        'chain_id': 8453,
        'rpc': _build_rpcs('BASE_MAINNET_RPC_URL', [
            "https://mainnet.base.org",
            "https://base.llamarpc.com",
            "https://base.publicnode.com",
        ]),
        'explorer': 'https://basescan.org',
    },
    'gnosis': {
        'name': 'Gnosis',
        'chain_id': 100,
        'rpc': _build_rpcs('GNOSIS_MAINNET_RPC_URL', [
            "https://rpc.gnosischain.com",
            "https://gnosis.publicnode.com",
        ]),
        'explorer': 'https://gnosisscan.io',
    },
}

SUPPORTED_CHAINS = list(CHAINS.keys())


def get_chain_config(chain_name: Optional[str]) -> Optional[Dict]:
    """Get configuration for a chain, None when the chain is not supported"""
    if not chain_name:
        return None
    return CHAINS.get(chain_name)


# ========== RESOLVER TUNABLES ==========
@dataclass(frozen=True)
class ResolverConfig:
    """Knobs handed to the resolver at construction time.

    Tolerances are in seconds. ``seek_tolerance_seconds`` decides whether a
    phase covers the start timestamp at all; ``transition_tolerance_seconds``
    bounds the gap accepted when stitching into the next phase.
    """

    seek_tolerance_seconds: int = 24 * 3600
    transition_tolerance_seconds: int = 24 * 3600
    chunk_size: int = 100
    first_round_id: int = 1
    probe_budget: int = 300
    call_retries: int = 3
    call_timeout: int = 10
    max_workers: int = 8
    strict_monotonic: bool = False

    @classmethod
    def from_env(cls, prefix: str = 'ROUND_RESOLVER_') -> 'ResolverConfig':
        """Build a config from ``ROUND_RESOLVER_*`` environment overrides."""
        overrides = {}
        for f in fields(cls):
            raw = os.environ.get(prefix + f.name.upper())
            if raw is None or raw == '':
                continue
            if f.type in (bool, 'bool'):
                overrides[f.name] = raw.strip().lower() in ('1', 'true', 'yes', 'on')
            else:
                overrides[f.name] = int(raw)
        return cls(**overrides)


# ========== EXPORT SETTINGS ==========
DATA_DIR = "data"
EXPORT_CSV_NAME = "data.csv"
