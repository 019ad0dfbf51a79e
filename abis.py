"""
ABI fragments for Chainlink-style price feeds.

The proxy (EACAggregatorProxy) exposes the phase helpers, each phase points at
an aggregator (AccessControlledOffchainAggregator) with its own round-id space.
"""

_ROUND_DATA_OUTPUTS = [
    {"internalType": "uint80", "name": "roundId", "type": "uint80"},
    {"internalType": "int256", "name": "answer", "type": "int256"},
    {"internalType": "uint256", "name": "startedAt", "type": "uint256"},
    {"internalType": "uint256", "name": "updatedAt", "type": "uint256"},
    {"internalType": "uint80", "name": "answeredInRound", "type": "uint80"},
]

FEED_PROXY_ABI = [
    {
        "inputs": [],
        "name": "phaseId",
        "outputs": [{"internalType": "uint16", "name": "", "type": "uint16"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint16", "name": "_phaseId", "type": "uint16"}],
        "name": "phaseAggregators",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "description",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": _ROUND_DATA_OUTPUTS,
        "stateMutability": "view",
        "type": "function",
    },
]

PHASE_AGGREGATOR_ABI = [
    {
        "inputs": [],
        "name": "latestRound",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "_roundId", "type": "uint256"}],
        "name": "getTimestamp",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint80", "name": "_roundId", "type": "uint80"}],
        "name": "getRoundData",
        "outputs": _ROUND_DATA_OUTPUTS,
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "description",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# One ABI covering both sides; every function name is unique across the two.
FEED_ABI = FEED_PROXY_ABI + [
    entry for entry in PHASE_AGGREGATOR_ABI
    if entry["name"] not in {e["name"] for e in FEED_PROXY_ABI}
]
