"""
Biometric digest and identifier generation for the TRUIDA system.

Capture payloads are reduced to a one-way, fixed-length hex digest that is
stored at enrollment and presented again at every checkpoint as an exact
match key. Identifiers for passenger records and log entries are random
128-bit tokens rendered as text.
"""

import hashlib
import uuid
from typing import Union

from .constants import DIGEST_ALGORITHM, PASSENGER_ID_PREFIX
from .exceptions import ConfigurationError


class HashingService:
    """
    Deterministic content hashing of biometric capture payloads.

    The same payload always yields the same digest, so the digest can be
    used both to store an enrollment and to look it up later.

    Parameters
    ----------
    algorithm : str, default=DIGEST_ALGORITHM
        hashlib algorithm name. Must produce a 256-bit digest.

    Examples
    --------
    >>> hasher = HashingService()
    >>> len(hasher.digest(b"face-capture"))
    64
    """

    def __init__(self, algorithm: str = DIGEST_ALGORITHM) -> None:
        if algorithm not in hashlib.algorithms_available:
            raise ConfigurationError(
                f"Unsupported hash algorithm: {algorithm}",
                config_key="algorithm",
                config_value=algorithm,
            )

        digest_size = hashlib.new(algorithm).digest_size
        if digest_size != 32:
            raise ConfigurationError(
                f"Digest algorithm must produce 256 bits, {algorithm} gives {digest_size * 8}",
                config_key="algorithm",
                config_value=algorithm,
            )

        self.algorithm = algorithm

    def digest(self, payload: Union[bytes, bytearray, memoryview, str]) -> str:
        """
        Compute the hex digest of a capture payload.

        Parameters
        ----------
        payload : bytes-like or str
            Raw capture bytes. Text is encoded as UTF-8.

        Returns
        -------
        str
            Lower-case hexadecimal digest (64 characters).
        """
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        hasher = hashlib.new(self.algorithm)
        hasher.update(bytes(payload))
        return hasher.hexdigest()


def generate_id(prefix: str = "") -> str:
    """
    Generate a collision-resistant identifier.

    Parameters
    ----------
    prefix : str, default=""
        Text prepended to the random token.

    Returns
    -------
    str
        ``prefix`` followed by a random UUID4 in canonical form.
    """
    return f"{prefix}{uuid.uuid4()}"


def generate_passenger_id() -> str:
    """Generate a passenger id such as ``TRU-3f2b...``."""
    return generate_id(PASSENGER_ID_PREFIX)
