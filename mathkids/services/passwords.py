import bcrypt

# bcrypt only reads the first 72 bytes of its input.
BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Salted bcrypt hashing for passwords and stored token digests."""

    def __init__(self, rounds: int = 10):
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        if not plain:
            raise ValueError("Cannot hash an empty value")
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode(
            "ascii"
        )

    def verify(self, plain: str, digest: str) -> bool:
        if not plain or not digest:
            return False
        try:
            return bcrypt.checkpw(_encode(plain), digest.encode("ascii"))
        except ValueError:
            # Malformed or non-bcrypt digest
            return False
