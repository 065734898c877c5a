"""
Key management module for the medledger core.
Handles generation, storage and use of wallet key material.

Wallets are secp256k1 keypairs derived from a BIP-39 mnemonic. Signatures are
EIP-191 personal-message signatures; a signature verifies against a public key
when the address recovered from it equals the address of that public key.
"""

import logging
import os
from typing import Dict

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import ValidationError as EthUtilsValidationError
from web3 import Web3

from medledger.errors import SigningFailure, WalletNotFound
from medledger.models import Wallet

logger = logging.getLogger(__name__)


def _strip_hex(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def public_key_to_address(public_key: str) -> str:
    """Derive the checksummed address for an uncompressed 64-byte public key"""
    return keys.PublicKey(bytes.fromhex(_strip_hex(public_key))).to_checksum_address()


def sign_message(message: str, private_key: str) -> str:
    """Sign a message with a private key

    Args:
        message: Text to sign
        private_key: Hex encoded private key

    Returns:
        str: 0x-prefixed 65-byte signature

    Raises:
        SigningFailure: If the key cannot be used for signing
    """
    try:
        signed = Account.sign_message(encode_defunct(text=message), private_key=private_key)
    except (ValueError, TypeError, ValidationError, EthUtilsValidationError) as e:
        raise SigningFailure(f"Failed to sign data: {e}") from e
    return Web3.to_hex(signed.signature)


def verify_signature(message: str, signature: str, public_key: str) -> bool:
    """Verify a signature against a public key

    Args:
        message: The original message
        signature: Signature produced by sign_message
        public_key: Hex encoded public key of the expected signer

    Returns:
        bool: True if the signature is valid, False otherwise
    """
    try:
        expected = public_key_to_address(public_key)
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except (ValueError, TypeError, BadSignature, ValidationError, EthUtilsValidationError) as e:
        logger.debug(f"Signature verification failed: {e}")
        return False
    return recovered == expected


class KeyManager:
    """Wallet store keyed by address"""

    def __init__(self):
        self.wallets: Dict[str, Wallet] = {}

    def create_wallet(self) -> str:
        """Create a new wallet and return its address

        Falls back to random key material if mnemonic key derivation is
        unavailable. Such wallets are flagged as degraded and cannot produce
        signatures that verify.
        """
        try:
            wallet = self._derive_wallet()
        except Exception as e:
            logger.warning(f"Key derivation unavailable, falling back to degraded wallet: {e}")
            wallet = self._degraded_wallet()

        while wallet.address in self.wallets:
            logger.warning(f"Address collision for {wallet.address}, regenerating")
            wallet = self._degraded_wallet() if wallet.degraded else self._derive_wallet()

        self.wallets[wallet.address] = wallet
        logger.info(f"Created wallet {wallet.address}")
        return wallet.address

    def _derive_wallet(self) -> Wallet:
        Account.enable_unaudited_hdwallet_features()
        account, mnemonic = Account.create_with_mnemonic()
        public_key = keys.PrivateKey(bytes(account.key)).public_key
        return Wallet(
            address=account.address,
            public_key=public_key.to_hex(),
            private_key=Web3.to_hex(account.key),
            mnemonic=mnemonic,
        )

    def _degraded_wallet(self) -> Wallet:
        return Wallet(
            address=f"0x{os.urandom(20).hex()}",
            public_key=os.urandom(32).hex(),
            private_key=os.urandom(32).hex(),
            degraded=True,
        )

    def get_wallet(self, address: str) -> Wallet:
        """Get the wallet for an address

        Raises:
            WalletNotFound: If no wallet is stored under the address
        """
        try:
            return self.wallets[address]
        except KeyError:
            raise WalletNotFound(f"Wallet not found: {address}") from None

    def has_wallet(self, address: str) -> bool:
        return address in self.wallets

    def sign(self, address: str, message: str) -> str:
        """Sign a message with the private key of the wallet at address"""
        wallet = self.get_wallet(address)
        if wallet.degraded:
            logger.warning(f"Signing with degraded key material for {wallet.address}")
        return sign_message(message, wallet.private_key)
