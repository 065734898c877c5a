import datetime
import logging
import os
from typing import Any, Callable, Dict, Optional

from medledger.constants import CREDENTIAL_ISSUER, CREDENTIAL_PROOF_TYPE, CREDENTIAL_VALIDITY_DAYS
from medledger.crypto.hashing import hash_data
from medledger.crypto.key_manager import verify_signature
from medledger.identity import IdentityStore
from medledger.models import Credential, CredentialProof, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class CredentialService:
    """Issues and checks verifiable credentials signed by the holder's wallet"""

    def __init__(
        self,
        identities: IdentityStore,
        clock: Callable[[], datetime.datetime] = utc_now,
        issuer: str = CREDENTIAL_ISSUER,
        validity_days: int = CREDENTIAL_VALIDITY_DAYS,
    ):
        self.identities = identities
        self.clock = clock
        self.issuer = issuer
        self.validity_days = validity_days

    def create_verifiable_credential(self, user_id: int, credential_type: str, claims: Dict[str, Any]) -> str:
        """Create a signed credential for a user

        The user's identity and wallet are created on first use.

        Args:
            user_id: The credential subject
            credential_type: e.g. "patientIdentity" or "medicalLicense"
            claims: The attested data

        Returns:
            str: The credential id
        """
        identity = self.identities.ensure(user_id)
        wallet = self.identities.key_manager.get_wallet(identity.wallet_address)

        claims_hash = hash_data(claims)
        signature = self.identities.key_manager.sign(wallet.address, claims_hash)

        now = self.clock()
        credential = Credential(
            id=f"vc-{user_id}-{credential_type}-{os.urandom(4).hex()}",
            type=credential_type,
            issuer=self.issuer,
            subject=user_id,
            issuance_date=now.isoformat(),
            expiration_date=(now + datetime.timedelta(days=self.validity_days)).isoformat(),
            claims=claims,
            proof=CredentialProof(
                type=CREDENTIAL_PROOF_TYPE,
                created=now.isoformat(),
                verification_method=wallet.public_key,
                proof_value=signature,
            ),
        )
        identity.credentials[credential.id] = credential
        logger.info(f"Issued {credential_type} credential {credential.id} to user {user_id}")
        return credential.id

    def get_credential(self, credential_id: str, user_id: int) -> Optional[Credential]:
        identity = self.identities.find(user_id)
        if identity is None:
            return None
        return identity.credentials.get(credential_id)

    def verify_credential(self, credential_id: str, user_id: int) -> bool:
        """Check a credential's signature and expiry; unknown credentials are invalid"""
        credential = self.get_credential(credential_id, user_id)
        if credential is None:
            return False

        expires = parse_timestamp(credential.expiration_date)
        if expires is None or self.clock() > expires:
            logger.info(f"Credential {credential_id} has expired")
            return False

        return verify_signature(
            hash_data(credential.claims),
            credential.proof.proof_value,
            credential.proof.verification_method,
        )
