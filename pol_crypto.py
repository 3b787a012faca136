"""
Proof-of-Life — Encrypted Template Vault
=========================================
In-memory AES-256 encryption for enrolled identity descriptors.
A memory dump of the record store yields no usable biometric template.

Privacy Promise:
  - Ephemeral keys (generated per vault, never stored)
  - AES-256-GCM (Authenticated Encryption), identity bound as AAD
  - Decryption only when a verification needs the template
  - Secure wiping on shutdown
"""

import logging
import os
from typing import Optional

import numpy as np
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


class TemplateVault:
    """
    Manages an ephemeral key and seals/unseals descriptor payloads.
    """

    def __init__(self):
        self.logger = logging.getLogger("TemplateVault")
        self._key = AESGCM.generate_key(bit_length=256)
        self._aes = AESGCM(self._key)
        self.logger.debug("Initialized AES-256-GCM template vault.")

    def seal(self, descriptor, identity: str) -> bytes:
        """
        Encrypt a descriptor, binding it to `identity`.
        Returns: nonce + ciphertext + tag
        """
        if self._aes is None:
            raise RuntimeError("Template vault has been wiped")
        payload = np.asarray(descriptor, dtype=np.float64).ravel().tobytes()
        nonce = os.urandom(12)  # 96-bit nonce for GCM
        return nonce + self._aes.encrypt(nonce, payload, identity.encode("utf-8"))

    def unseal(self, blob: bytes, identity: str) -> Optional[np.ndarray]:
        """
        Decrypt a sealed descriptor. Returns None if the blob was tampered
        with or sealed for another identity.
        """
        if self._aes is None:
            raise RuntimeError("Template vault has been wiped")
        nonce, ciphertext = blob[:12], blob[12:]
        try:
            payload = self._aes.decrypt(nonce, ciphertext, identity.encode("utf-8"))
        except InvalidTag:
            self.logger.error("Template decryption failed for %s", identity)
            return None
        return np.frombuffer(payload, dtype=np.float64).copy()

    def secure_wipe(self):
        """
        Best-effort clearing of key from memory.
        (Python doesn't guarantee memory clearing, but we dereference immediately.)
        """
        self._key = None
        self._aes = None
        self.logger.info("Template vault keys purged.")
