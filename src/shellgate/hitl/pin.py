"""PIN storage for pin-tier approvals.

The PIN is stored as a salted scrypt hash in a JSON file readable only
by the owner. The plain PIN is never written to disk.
"""

import hashlib
import hmac
import json
import os
import secrets
from datetime import datetime
from pathlib import Path

from shellgate.logging import Loggers

logger = Loggers.permission()

MIN_PIN_LENGTH = 4

# scrypt cost parameters
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


def _hash_pin(pin: str, salt: bytes) -> str:
    return hashlib.scrypt(
        pin.encode("utf-8"), salt=salt, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P
    ).hex()


class PinStore:
    """Reads and writes the hashed PIN file.

    Example:
        store = PinStore(settings.pin_file)
        store.set("4821")
        store.verify("4821")  # True
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        """Check whether a PIN has been configured."""
        return self.path.exists()

    def set(self, pin: str) -> None:
        """Hash and store a new PIN, replacing any existing one.

        Raises:
            ValueError: If the PIN is shorter than MIN_PIN_LENGTH.
        """
        if len(pin) < MIN_PIN_LENGTH:
            raise ValueError(f"PIN must be at least {MIN_PIN_LENGTH} characters")

        salt = secrets.token_bytes(16)
        record = {
            "hash": _hash_pin(pin, salt),
            "salt": salt.hex(),
            "created_at": datetime.now().isoformat(),
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(record, f)
        os.chmod(self.path, 0o600)
        logger.info("pin_configured", path=str(self.path))

    def verify(self, pin: str) -> bool:
        """Check a PIN against the stored hash (False when none is set)."""
        if not self.exists():
            return False
        with open(self.path) as f:
            record = json.load(f)
        expected = record["hash"]
        actual = _hash_pin(pin, bytes.fromhex(record["salt"]))
        return hmac.compare_digest(expected, actual)

    def remove(self) -> bool:
        """Delete the PIN file. Returns False if there was none."""
        if not self.exists():
            return False
        self.path.unlink()
        logger.info("pin_removed", path=str(self.path))
        return True
