import re
import unittest
from unittest import mock

from medledger.credentials import CredentialService
from medledger.crypto.key_manager import KeyManager
from medledger.identity import IdentityStore
from tests.helpers import FakeClock

LICENSE = {"licenseNumber": "MD-4471", "specialty": "cardiology"}


class TestCredentials(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.identities = IdentityStore(KeyManager())
        self.service = CredentialService(self.identities, clock=self.clock)

    def test_creates_identity_on_first_credential(self):
        self.assertNotIn(7, self.identities)
        credential_id = self.service.create_verifiable_credential(7, "medicalLicense", LICENSE)

        self.assertIn(7, self.identities)
        self.assertRegex(credential_id, re.compile(r"^vc-7-medicalLicense-[0-9a-f]{8}$"))
        self.assertIn(credential_id, self.identities.get(7).credentials)

    def test_reuses_identity(self):
        self.service.create_verifiable_credential(7, "medicalLicense", LICENSE)
        address = self.identities.get(7).wallet_address
        self.service.create_verifiable_credential(7, "patientIdentity", {"name": "Ada"})
        self.assertEqual(self.identities.get(7).wallet_address, address)
        self.assertEqual(len(self.identities.get(7).credentials), 2)

    def test_credential_fields(self):
        credential_id = self.service.create_verifiable_credential(7, "medicalLicense", LICENSE)
        credential = self.service.get_credential(credential_id, 7)
        wallet = self.identities.wallet(7)

        self.assertEqual(credential.issuer, "MediBridge")
        self.assertEqual(credential.subject, 7)
        self.assertEqual(credential.claims, LICENSE)
        self.assertEqual(credential.proof.type, "EcdsaSecp256k1RecoverySignature2020")
        self.assertEqual(credential.proof.proof_purpose, "assertionMethod")
        self.assertEqual(credential.proof.verification_method, wallet.public_key)

    def test_verify(self):
        credential_id = self.service.create_verifiable_credential(7, "medicalLicense", LICENSE)
        self.assertTrue(self.service.verify_credential(credential_id, 7))

    def test_lookup_misses(self):
        credential_id = self.service.create_verifiable_credential(7, "medicalLicense", LICENSE)
        self.assertFalse(self.service.verify_credential(credential_id, 8))
        self.assertFalse(self.service.verify_credential("vc-7-medicalLicense-00000000", 7))

    def test_tampered_claims(self):
        credential_id = self.service.create_verifiable_credential(7, "medicalLicense", LICENSE)
        self.service.get_credential(credential_id, 7).claims["specialty"] = "neurosurgery"
        self.assertFalse(self.service.verify_credential(credential_id, 7))

    def test_expired(self):
        credential_id = self.service.create_verifiable_credential(7, "medicalLicense", LICENSE)
        self.clock.advance(days=364)
        self.assertTrue(self.service.verify_credential(credential_id, 7))
        self.clock.advance(days=2)
        self.assertFalse(self.service.verify_credential(credential_id, 7))

    def test_degraded_wallet_credentials_do_not_verify(self):
        def no_derivation(self):
            raise RuntimeError("hd wallet features unavailable")

        with mock.patch.object(KeyManager, "_derive_wallet", no_derivation):
            credential_id = self.service.create_verifiable_credential(9, "patientIdentity", {"name": "Bo"})
        self.assertFalse(self.service.verify_credential(credential_id, 9))


if __name__ == "__main__":
    unittest.main()
