"""Wallet signing identity.

Wraps an Ethereum private key (via ``eth_account``) and produces the
EIP-191 ``personal_sign`` signatures the node API expects.
"""

import logging
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct

logger = logging.getLogger(__name__)


class InvalidKey(ValueError):
    """Raised when the supplied private key cannot be loaded."""


class SigningIdentity:
    """A wallet address plus the key that signs for it.

    Instances are immutable once constructed and are owned by exactly
    one :class:`~edgenode.session.NodeSession`.

    Args:
        private_key: Hex-encoded private key (with or without ``0x``).
            When omitted a fresh random key is generated.
    """

    __slots__ = ("_account",)

    def __init__(self, private_key: Optional[str] = None):
        if private_key is None:
            account = Account.create()
        else:
            if not isinstance(private_key, str) or not private_key.strip():
                raise InvalidKey("Private key must be a non-empty hex string")
            try:
                account = Account.from_key(private_key.strip())
            except Exception as e:  # eth_keys raises its own ValidationError
                raise InvalidKey(f"Invalid private key: {e}") from e
        object.__setattr__(self, "_account", account)

    def __setattr__(self, name, value):
        raise AttributeError("SigningIdentity is immutable")

    def __repr__(self) -> str:
        return f"SigningIdentity(address={self.address!r})"

    @property
    def address(self) -> str:
        """Checksummed ``0x`` address."""
        return self._account.address

    @property
    def private_key(self) -> str:
        """``0x``-prefixed hex private key (needed to persist new wallets)."""
        return "0x" + bytes(self._account.key).hex()

    def sign(self, message: str) -> str:
        """Sign *message* and return the ``0x``-prefixed hex signature."""
        signed = self._account.sign_message(encode_defunct(text=message))
        return "0x" + bytes(signed.signature).hex()

    def verify(self, message: str, signature: str) -> bool:
        """Return ``True`` if *signature* over *message* recovers to this address."""
        try:
            recovered = Account.recover_message(
                encode_defunct(text=message), signature=signature,
            )
        except Exception as e:
            logger.debug(f"Signature recovery failed: {e}")
            return False
        return recovered == self.address
