from typing import Optional

from web3 import Web3

from .errors import ValidationError

REFERRAL_CODE_LEN = 6


def normalize_address(raw: Optional[str], require_evm: bool = True) -> str:
    """Lower-case a wallet address, rejecting empty or (optionally) non-EVM input."""
    addr = (raw or "").strip()
    if not addr:
        raise ValidationError("Wallet address is required.")
    if require_evm and not Web3.is_address(addr):
        raise ValidationError(f"Invalid wallet address: {addr}")
    return addr.lower()


def normalize_tx_hash(raw: Optional[str]) -> str:
    # Recorded for audit only; never checked against a chain.
    tx_hash = (raw or "").strip().lower()
    if not tx_hash:
        raise ValidationError("Transaction hash is required for staking.")
    return tx_hash


def referral_code_for(address: str) -> str:
    return address.lower()[-REFERRAL_CODE_LEN:]
