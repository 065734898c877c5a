import unittest
from unittest import mock

from web3 import Web3

from medledger.crypto.key_manager import (
    KeyManager,
    public_key_to_address,
    sign_message,
    verify_signature,
)
from medledger.errors import SigningFailure, WalletNotFound


def _no_derivation(self):
    raise RuntimeError("hd wallet features unavailable")


class TestWallets(unittest.TestCase):
    def setUp(self):
        self.km = KeyManager()

    def test_create_wallet_derives_matching_address(self):
        address = self.km.create_wallet()
        wallet = self.km.get_wallet(address)

        self.assertTrue(Web3.is_checksum_address(address))
        self.assertEqual(public_key_to_address(wallet.public_key), address)
        self.assertEqual(len(wallet.mnemonic.split()), 12)
        self.assertFalse(wallet.degraded)

    def test_addresses_are_distinct(self):
        addresses = {self.km.create_wallet() for _ in range(50)}
        self.assertEqual(len(addresses), 50)

    def test_unknown_wallet(self):
        with self.assertRaises(WalletNotFound):
            self.km.get_wallet("0x0000000000000000000000000000000000000000")
        # Also usable as a plain lookup miss
        with self.assertRaises(KeyError):
            self.km.get_wallet("missing")

    def test_repr_hides_key_material(self):
        wallet = self.km.get_wallet(self.km.create_wallet())
        self.assertNotIn(wallet.private_key, repr(wallet))
        self.assertNotIn(wallet.mnemonic, str(wallet))


class TestDegradedWallets(unittest.TestCase):
    def setUp(self):
        self.km = KeyManager()

    def test_fallback_is_flagged_and_logged(self):
        with mock.patch.object(KeyManager, "_derive_wallet", _no_derivation):
            with self.assertLogs("medledger.crypto.key_manager", level="WARNING") as logs:
                address = self.km.create_wallet()

        self.assertTrue(self.km.get_wallet(address).degraded)
        self.assertTrue(any("degraded" in line for line in logs.output))

    def test_ten_thousand_distinct_addresses(self):
        with mock.patch.object(KeyManager, "_derive_wallet", _no_derivation):
            addresses = [self.km.create_wallet() for _ in range(10_000)]

        self.assertEqual(len(set(addresses)), 10_000)
        self.assertEqual(len(self.km.wallets), 10_000)

    def test_degraded_signatures_do_not_verify(self):
        with mock.patch.object(KeyManager, "_derive_wallet", _no_derivation):
            address = self.km.create_wallet()
        wallet = self.km.get_wallet(address)

        signature = self.km.sign(address, "hello")
        self.assertFalse(verify_signature("hello", signature, wallet.public_key))


class TestSignatures(unittest.TestCase):
    def setUp(self):
        self.km = KeyManager()
        self.alice = self.km.get_wallet(self.km.create_wallet())
        self.bob = self.km.get_wallet(self.km.create_wallet())

    def test_sign_and_verify(self):
        signature = self.km.sign(self.alice.address, "consent terms")
        self.assertTrue(signature.startswith("0x"))
        self.assertEqual(len(signature), 2 + 130)
        self.assertTrue(verify_signature("consent terms", signature, self.alice.public_key))

    def test_wrong_message(self):
        signature = sign_message("consent terms", self.alice.private_key)
        self.assertFalse(verify_signature("other terms", signature, self.alice.public_key))

    def test_wrong_signer(self):
        signature = sign_message("consent terms", self.bob.private_key)
        self.assertFalse(verify_signature("consent terms", signature, self.alice.public_key))

    def test_malformed_inputs_return_false(self):
        signature = sign_message("consent terms", self.alice.private_key)
        self.assertFalse(verify_signature("consent terms", "0xnothex", self.alice.public_key))
        self.assertFalse(verify_signature("consent terms", signature, "0x1234"))

    def test_invalid_private_key(self):
        with self.assertRaises(SigningFailure):
            sign_message("consent terms", "0x1234")

    def test_sign_with_unknown_wallet(self):
        with self.assertRaises(WalletNotFound):
            self.km.sign("0xunknown", "consent terms")


if __name__ == "__main__":
    unittest.main()
