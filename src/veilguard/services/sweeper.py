"""
Sweeper - Move funds out of stealth addresses.

The stealth private key is re-derived on demand from the merchant's meta
keys and the invoice's ephemeral public key, used to sign one ERC-20
transfer, and dropped. It is never stored or logged.

Before anything is signed the derived address must equal the address the
invoice recorded; otherwise KeyMismatch is raised and nothing is sent.

Gas for the transfer is paid in the native token by the stealth address
itself, so it must be topped up first.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from eth_account import Account
from web3 import Web3

from veilguard.networks import ERC20_ABI, format_address, format_units
from veilguard.wallet.crypto import HexOrBytes, addresses_equal
from veilguard.wallet.errors import KeyMismatch
from veilguard.wallet.keys import MetaPrivateKeys
from veilguard.wallet.stealth import Erc5564Scheme, StealthKeys, StealthScheme
from .transactions import contract_call

logger = logging.getLogger(__name__)

TRANSFER_SIGNATURE = "transfer(address,uint256)"
TRANSFER_GAS_LIMIT = 100_000


def derive_spending_key(
    keys: MetaPrivateKeys,
    ephemeral_pub_key: HexOrBytes,
    expected_address: str,
    scheme: Optional[StealthScheme] = None,
) -> StealthKeys:
    """
    Re-derive the stealth key for an invoice.

    Raises:
        KeyMismatch: derived address differs from expected_address
        StealthError: scheme cannot derive keys (demo)
    """
    scheme = scheme or Erc5564Scheme()
    derived = scheme.derive_keys(keys, ephemeral_pub_key)
    if not addresses_equal(derived.stealth_address, expected_address):
        raise KeyMismatch(expected=expected_address, derived=derived.stealth_address)
    return derived


def build_token_transfer(
    stealth_priv: HexOrBytes,
    token: str,
    to: str,
    amount: int,
    chain_id: int,
    nonce: int,
    gas: int = TRANSFER_GAS_LIMIT,
    gas_price: int = 0,
):
    """
    Sign an ERC-20 transfer(to, amount) from the stealth address.

    Returns:
        eth_account SignedTransaction
    """
    if amount <= 0:
        raise ValueError("Transfer amount must be positive")

    tx = contract_call(token, TRANSFER_SIGNATURE, ["address", "uint256"],
                       [Web3.to_checksum_address(to), amount], gas=gas)
    tx.update({"chainId": chain_id, "nonce": nonce, "gasPrice": gas_price})
    return Account.from_key(stealth_priv).sign_transaction(tx)


@dataclass
class SweepResult:
    """Outcome of a sweep or refund."""
    tx_hash: str
    from_address: str
    to_address: str
    amount: int


def _token_balance(w3: Web3, token: str, owner: str) -> int:
    contract = w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)
    return contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()


def _move_funds(
    w3: Web3,
    keys: MetaPrivateKeys,
    ephemeral_pub_key: HexOrBytes,
    stealth_address: str,
    token: str,
    destination: str,
    amount: Optional[int],
    scheme: Optional[StealthScheme],
    empty_message: str,
    decimals: int,
) -> SweepResult:
    derived = derive_spending_key(keys, ephemeral_pub_key, stealth_address, scheme)

    if amount is None:
        amount = _token_balance(w3, token, derived.stealth_address)
    if amount <= 0:
        raise ValueError(empty_message)

    signed = build_token_transfer(
        derived.stealth_priv,
        token=token,
        to=destination,
        amount=amount,
        chain_id=w3.eth.chain_id,
        nonce=w3.eth.get_transaction_count(derived.stealth_address),
        gas_price=w3.eth.gas_price,
    )
    tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))

    logger.info(
        f"Moved {format_units(amount, decimals)} from {format_address(derived.stealth_address)} "
        f"to {format_address(destination)}: {tx_hash}"
    )
    return SweepResult(
        tx_hash=tx_hash,
        from_address=derived.stealth_address,
        to_address=Web3.to_checksum_address(destination),
        amount=amount,
    )


def sweep(
    w3: Web3,
    keys: MetaPrivateKeys,
    ephemeral_pub_key: HexOrBytes,
    stealth_address: str,
    token: str,
    merchant_safe: str,
    amount: Optional[int] = None,
    scheme: Optional[StealthScheme] = None,
    decimals: int = 6,
) -> SweepResult:
    """
    Transfer a stealth address's token balance to the merchant's safe.

    Args:
        amount: Raw token units; None sweeps the full balance

    Raises:
        KeyMismatch: keys do not own stealth_address
        ValueError: "No funds to sweep" when the balance is zero
    """
    if not merchant_safe:
        raise ValueError("Merchant safe address is not configured")
    return _move_funds(w3, keys, ephemeral_pub_key, stealth_address, token,
                       merchant_safe, amount, scheme, "No funds to sweep", decimals)


def refund(
    w3: Web3,
    keys: MetaPrivateKeys,
    ephemeral_pub_key: HexOrBytes,
    stealth_address: str,
    token: str,
    payer: str,
    amount: Optional[int] = None,
    scheme: Optional[StealthScheme] = None,
    decimals: int = 6,
) -> SweepResult:
    """Send a stealth address's token balance back to the payer (from the Transfer log)."""
    return _move_funds(w3, keys, ephemeral_pub_key, stealth_address, token,
                       payer, amount, scheme, "No funds to refund", decimals)
