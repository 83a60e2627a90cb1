"""
Transactions - Calldata encoding, signing and submission.

Unsigned transactions are plain dicts ({"to", "data", "value", "gas"}) so
they can be built and inspected without a node. Signing uses eth_account;
only sign_and_send touches the network.
"""

import logging
from typing import Any, Optional, Sequence

from eth_abi import encode
from eth_account import Account
from web3 import Web3

logger = logging.getLogger(__name__)


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of a canonical signature like "transfer(address,uint256)"."""
    return bytes(Web3.keccak(text=signature))[:4]


def call_data(signature: str, arg_types: Sequence[str], args: Sequence[Any]) -> str:
    """ABI-encoded call data as 0x hex."""
    return Web3.to_hex(function_selector(signature) + encode(list(arg_types), list(args)))


def contract_call(
    to: str,
    signature: str,
    arg_types: Sequence[str],
    args: Sequence[Any],
    gas: Optional[int] = None,
) -> dict:
    """Unsigned contract call transaction."""
    tx = {
        "to": Web3.to_checksum_address(to),
        "data": call_data(signature, arg_types, args),
        "value": 0,
    }
    if gas is not None:
        tx["gas"] = gas
    return tx


def prepare_transaction(w3: Web3, tx: dict, sender: str) -> dict:
    """Fill chainId, nonce, gasPrice and gas from the node where missing."""
    sender = Web3.to_checksum_address(sender)
    tx = dict(tx)
    if "chainId" not in tx:
        tx["chainId"] = w3.eth.chain_id
    if "nonce" not in tx:
        tx["nonce"] = w3.eth.get_transaction_count(sender)
    if "gasPrice" not in tx and "maxFeePerGas" not in tx:
        tx["gasPrice"] = w3.eth.gas_price
    if "gas" not in tx:
        tx["gas"] = w3.eth.estimate_gas({"from": sender, "to": tx["to"], "data": tx.get("data", "0x")})
    return tx


def sign_transaction(tx: dict, private_key: bytes | str):
    """Sign a complete transaction dict. Returns eth_account's SignedTransaction."""
    return Account.from_key(private_key).sign_transaction(tx)


def sign_and_send(w3: Web3, tx: dict, private_key: bytes | str) -> str:
    """
    Fill, sign and broadcast a transaction.

    Returns:
        Transaction hash as 0x hex
    """
    account = Account.from_key(private_key)
    signed = account.sign_transaction(prepare_transaction(w3, tx, account.address))
    tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
    logger.info(f"Sent transaction {tx_hash} from {account.address}")
    return tx_hash
