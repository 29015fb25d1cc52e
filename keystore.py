"""
Keystore Module - Encrypted Funder Key
======================================
Keeps the funder private key encrypted at rest so it does not have to be
passed on the command line.

- PBKDF2-HMAC-SHA256 key derivation (600k iterations)
- Fernet (AES-128-CBC) encryption
- Unique salt per save
- File permissions 0o600 (owner-only)
"""

import os
import json
import base64
import secrets
from pathlib import Path
from datetime import datetime
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import decode_private_key
from utils import logger, KeyStoreError


class FunderKeyStore:
    """
    Encrypts and decrypts the funder private key.

    The file is a small JSON document holding the salt, the Fernet token and
    the KDF iteration count used to produce it.
    """

    KEY_FILE = "./funder_key.enc"
    ITERATIONS = 600_000
    VERSION = 1

    def __init__(self, key_file: Optional[str] = None, iterations: Optional[int] = None):
        self.key_file = Path(key_file or self.KEY_FILE)
        self.iterations = iterations or self.ITERATIONS

    def _derive_key(self, password: str, salt: bytes, iterations: int) -> bytes:
        """Derive a Fernet key from the password."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    def exists(self) -> bool:
        return self.key_file.exists()

    def encrypt_and_save(self, private_key: str, password: str):
        """
        Encrypt and save a private key.

        Args:
            private_key: Hex private key, with or without 0x prefix
            password: Encryption password

        Raises:
            ConfigError: If the key is malformed
            KeyStoreError: If the password is empty
        """
        if not password:
            raise KeyStoreError("Password must not be empty")

        key_bytes = decode_private_key(private_key)

        salt = secrets.token_bytes(16)
        fernet = Fernet(self._derive_key(password, salt, self.iterations))
        encrypted = fernet.encrypt(key_bytes.hex().encode())

        data = {
            "version": self.VERSION,
            "salt": base64.b64encode(salt).decode(),
            "encrypted_key": encrypted.decode(),
            "iterations": self.iterations,
            "created": datetime.now().isoformat(),
        }

        self.key_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.key_file, 'w') as f:
            json.dump(data, f)

        os.chmod(self.key_file, 0o600)
        logger.info(f"Encrypted funder key saved to {self.key_file}")

    def load_and_decrypt(self, password: str) -> str:
        """
        Load and decrypt the private key.

        Returns:
            Private key as 0x-prefixed hex

        Raises:
            KeyStoreError: Missing or corrupt file, or wrong password
        """
        if not self.key_file.exists():
            raise KeyStoreError(f"Key file not found: {self.key_file}")

        try:
            with open(self.key_file, 'r') as f:
                data = json.load(f)
            salt = base64.b64decode(data["salt"])
            token = data["encrypted_key"].encode()
            iterations = int(data.get("iterations", self.ITERATIONS))
        except (ValueError, KeyError, TypeError) as e:
            raise KeyStoreError(f"Corrupt key file {self.key_file}: {e}")

        fernet = Fernet(self._derive_key(password, salt, iterations))
        try:
            decrypted = fernet.decrypt(token)
        except InvalidToken:
            raise KeyStoreError("Could not decrypt funder key (wrong password?)")

        return "0x" + decrypted.decode()
