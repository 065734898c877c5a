import logging
from typing import Dict, Optional

from medledger.crypto.key_manager import KeyManager
from medledger.errors import NoIdentity
from medledger.models import Identity, Wallet

logger = logging.getLogger(__name__)


class IdentityStore:
    """Maps user ids to ledger identities; wallets stay in the KeyManager"""

    def __init__(self, key_manager: KeyManager):
        self.key_manager = key_manager
        self.identities: Dict[int, Identity] = {}

    def __contains__(self, user_id) -> bool:
        return user_id in self.identities

    def find(self, user_id: int) -> Optional[Identity]:
        return self.identities.get(user_id)

    def get(self, user_id: int) -> Identity:
        """Get the identity of a user

        Raises:
            NoIdentity: If the user has no identity yet
        """
        identity = self.identities.get(user_id)
        if identity is None:
            raise NoIdentity(f"No blockchain identity found for user {user_id}")
        return identity

    def ensure(self, user_id: int) -> Identity:
        """Get the identity of a user, creating it and its wallet on first use"""
        identity = self.identities.get(user_id)
        if identity is None:
            address = self.key_manager.create_wallet()
            identity = Identity(user_id=user_id, wallet_address=address)
            self.identities[user_id] = identity
            logger.info(f"Created identity for user {user_id} with wallet {address}")
        return identity

    def wallet(self, user_id: int) -> Wallet:
        return self.key_manager.get_wallet(self.get(user_id).wallet_address)
