from __future__ import annotations

from typing import Protocol


class KeyManagementClient(Protocol):
    """KMS: расшифровать шифротекст ключом key_id, вернуть plaintext-байты."""

    async def decrypt(self, key_id: str, ciphertext: bytes) -> bytes:
        ...
