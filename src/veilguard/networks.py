"""
VeilGuard Networks - Chain configurations, contract ABIs and balance reads

Supports Polygon PoS and Polygon Amoy.

Contract addresses default to the zero address (not deployed) and can be
set per chain with environment variables:
    VEILGUARD_INVOICE_REGISTRY_<CHAINID>
    VEILGUARD_STEALTH_HELPER_<CHAINID>
    VEILGUARD_RECEIPT_STORE_<CHAINID>
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

CONTRACT_INVOICE_REGISTRY = "invoice_registry"
CONTRACT_STEALTH_HELPER = "stealth_helper"
CONTRACT_RECEIPT_STORE = "receipt_store"
CONTRACTS = (CONTRACT_INVOICE_REGISTRY, CONTRACT_STEALTH_HELPER, CONTRACT_RECEIPT_STORE)


# ============================================
# Network Configurations
# ============================================

@dataclass
class NetworkConfig:
    """Configuration for a blockchain network."""
    chain_id: int
    name: str
    display_name: str
    rpc_url: str
    explorer_url: str
    is_testnet: bool
    native_symbol: str
    native_decimals: int = 18
    contracts: dict[str, str] = field(default_factory=dict)  # contract name -> address

    def contract_address(self, contract: str) -> str:
        """
        Resolve a contract address, env override first.

        Raises:
            ValueError: unknown contract name
        """
        if contract not in CONTRACTS:
            raise ValueError(f"Unknown contract: {contract}")
        env_var = f"VEILGUARD_{contract.upper()}_{self.chain_id}"
        address = os.environ.get(env_var) or self.contracts.get(contract) or ZERO_ADDRESS
        return Web3.to_checksum_address(address)

    def is_deployed(self, contract: str) -> bool:
        return self.contract_address(contract) != ZERO_ADDRESS

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"


# Supported networks
NETWORKS = {
    # Polygon PoS Mainnet
    137: NetworkConfig(
        chain_id=137,
        name="polygon",
        display_name="Polygon PoS",
        rpc_url="https://polygon-rpc.com",
        explorer_url="https://polygonscan.com",
        is_testnet=False,
        native_symbol="POL",
    ),
    # Polygon Amoy Testnet
    80002: NetworkConfig(
        chain_id=80002,
        name="polygon-amoy",
        display_name="Polygon Amoy",
        rpc_url="https://rpc-amoy.polygon.technology",
        explorer_url="https://amoy.polygonscan.com",
        is_testnet=True,
        native_symbol="POL",
    ),
}

# Default network
DEFAULT_NETWORK = 137


# ============================================
# Token Configurations
# ============================================

@dataclass
class TokenConfig:
    """Configuration for an ERC-20 token."""
    symbol: str
    name: str
    decimals: int
    addresses: dict[int, str]  # chain_id -> contract address


# Known tokens
TOKENS = {
    "USDC": TokenConfig(
        symbol="USDC",
        name="USD Coin",
        decimals=6,
        addresses={
            137: "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",    # Polygon native USDC
        }
    ),
    "USDC.e": TokenConfig(
        symbol="USDC.e",
        name="Bridged USD Coin",
        decimals=6,
        addresses={
            137: "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174",    # Polygon PoS bridged
        }
    ),
    "tUSDC": TokenConfig(
        symbol="tUSDC",
        name="Test USD Coin",
        decimals=6,
        addresses={
            80002: "0x3156F6E761D7c9dA0a88A6165864995f2b58854f",  # Amoy test token
        }
    ),
}


# ============================================
# Contract ABIs
# ============================================

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function"
    },
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"}
        ],
        "name": "Transfer",
        "type": "event"
    },
]

STEALTH_HELPER_ABI = [
    {
        "inputs": [
            {"name": "schemeId", "type": "uint256"},
            {"name": "stealthAddress", "type": "address"},
            {"name": "ephemeralPubKey", "type": "bytes"},
            {"name": "metadata", "type": "bytes"}
        ],
        "name": "announce",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "schemeId", "type": "uint256"},
            {"indexed": True, "name": "stealthAddress", "type": "address"},
            {"indexed": True, "name": "initiator", "type": "address"},
            {"indexed": False, "name": "ephemeralPubKey", "type": "bytes"},
            {"indexed": False, "name": "metadata", "type": "bytes"}
        ],
        "name": "Announcement",
        "type": "event"
    },
]

RECEIPT_STORE_ABI = [
    {
        "inputs": [
            {"name": "invoiceId", "type": "bytes32"},
            {"name": "receiptHash", "type": "bytes32"}
        ],
        "name": "store",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "", "type": "bytes32"}],
        "name": "receiptOf",
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function"
    },
]

INVOICE_REGISTRY_ABI = [
    {
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "stealthAddress", "type": "address"},
            {"name": "memo", "type": "string"}
        ],
        "name": "createInvoice",
        "outputs": [{"name": "invoiceId", "type": "bytes32"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "invoiceId", "type": "bytes32"},
            {"name": "amount", "type": "uint256"},
            {"name": "txHashHint", "type": "bytes32"}
        ],
        "name": "markPaid",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "invoiceId", "type": "bytes32"},
            {"indexed": True, "name": "merchant", "type": "address"},
            {"indexed": False, "name": "token", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
            {"indexed": False, "name": "stealthAddress", "type": "address"}
        ],
        "name": "InvoiceCreated",
        "type": "event"
    },
]


# ============================================
# Web3 Access
# ============================================

def make_web3(network: NetworkConfig, rpc_url: Optional[str] = None) -> Web3:
    """HTTP Web3 client for a network, optionally with a custom RPC URL."""
    return Web3(Web3.HTTPProvider(rpc_url if rpc_url else network.rpc_url))


# ============================================
# Utility Functions
# ============================================

def get_network(chain_id: int) -> Optional[NetworkConfig]:
    """Get network config by chain ID."""
    return NETWORKS.get(chain_id)


def require_network(chain_id: int) -> NetworkConfig:
    network = get_network(chain_id)
    if network is None:
        raise ValueError(f"Unsupported chain: {chain_id}")
    return network


def get_token(symbol: str) -> Optional[TokenConfig]:
    return TOKENS.get(symbol)


def get_token_address(token: TokenConfig, chain_id: int) -> str:
    if chain_id not in token.addresses:
        raise ValueError(f"{token.symbol} is not available on chain {chain_id}")
    return Web3.to_checksum_address(token.addresses[chain_id])


def get_tokens_for_chain(chain_id: int) -> list[TokenConfig]:
    return [t for t in TOKENS.values() if chain_id in t.addresses]


def format_units(raw: int, decimals: int) -> str:
    """Format a raw integer amount with `decimals` places, trailing zeros trimmed."""
    whole, frac = divmod(raw, 10 ** decimals)
    if not frac:
        return str(whole)
    return f"{whole}.{str(frac).rjust(decimals, '0').rstrip('0')}"


def format_address(address: str, chars: int = 4) -> str:
    """Format address as 0x1234...5678"""
    if len(address) <= chars * 2 + 2:
        return address
    return f"{address[:chars+2]}...{address[-chars:]}"
