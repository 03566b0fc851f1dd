"""
Hashing - One-way password hashing

The engine only needs ``hash`` and ``verify``; any object providing them can
be injected. BcryptHasher is the default implementation.
"""

from typing import Protocol, runtime_checkable

import bcrypt

from ..constants import BCRYPT_PREFIX, DEFAULT_HASH_COST, MAX_HASH_COST, MIN_HASH_COST
from ..errors import InvalidInput

import logging
logger = logging.getLogger(__name__)


@runtime_checkable
class OneWayHash(Protocol):
    """Hashes secrets and checks secrets against stored hashes."""

    def hash(self, plaintext: str) -> str:
        ...

    def verify(self, plaintext: str, hashed: str) -> bool:
        ...


def looks_hashed(value: str) -> bool:
    """True when ``value`` already has the shape of a bcrypt hash."""
    return isinstance(value, str) and value.startswith(BCRYPT_PREFIX)


def hash_cost(hashed: str) -> int:
    """Work factor encoded in a bcrypt hash (``$2b$12$...`` -> 12)."""
    try:
        return int(hashed.split("$")[2])
    except (AttributeError, IndexError, ValueError):
        raise InvalidInput("Value is not a bcrypt hash.")


def needs_rehash(hashed: str, cost: int = DEFAULT_HASH_COST) -> bool:
    """
    Whether a stored hash should be recomputed with the current cost.

    Args:
        hashed: Stored bcrypt hash
        cost: Work factor currently configured

    Returns:
        True when the stored cost differs or the value is not a bcrypt hash
    """
    if not looks_hashed(hashed):
        return True
    try:
        return hash_cost(hashed) != cost
    except InvalidInput:
        return True


class BcryptHasher:
    """
    bcrypt-based OneWayHash.

    Usage:
        hasher = BcryptHasher(cost=12)
        stored = hasher.hash("s3cret")
        assert hasher.verify("s3cret", stored)
    """

    def __init__(self, cost: int = DEFAULT_HASH_COST):
        if not MIN_HASH_COST <= cost <= MAX_HASH_COST:
            raise InvalidInput(f"bcrypt cost must be between {MIN_HASH_COST} and {MAX_HASH_COST}, got {cost}.")
        self.cost = cost

    def hash(self, plaintext: str) -> str:
        """Hash a non-empty secret with a fresh salt."""
        if plaintext is None or plaintext == "":
            raise InvalidInput("Cannot hash an empty value.")
        return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self.cost)).decode("ascii")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Check a secret against a stored hash; malformed hashes never match."""
        if not plaintext or not hashed:
            return False
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            logger.debug("Stored value is not a valid bcrypt hash")
            return False

    def needs_rehash(self, hashed: str) -> bool:
        return needs_rehash(hashed, self.cost)
