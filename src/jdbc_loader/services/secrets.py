from __future__ import annotations

import base64
import binascii
import logging
from typing import Mapping

from src.jdbc_loader.core.exceptions import CredentialDecryptionError
from src.jdbc_loader.ports.kms import KeyManagementClient
from src.jdbc_loader.schemas.pipeline import EncryptableValue, PipelineConfig
from src.jdbc_loader.services.connection import ResolvedConnection

logger = logging.getLogger("jdbc_loader")


class SecretResolver:
    """Decrypts credential-bearing fields of a pipeline config.

    Values and ciphertexts are never logged, only field names.
    """

    def __init__(self, kms: KeyManagementClient | None) -> None:
        self._kms = kms

    async def resolve(
        self,
        value: EncryptableValue,
        key_id: str | None,
        *,
        field: str,
    ) -> str | None:
        if value.raw is None:
            return None
        if key_id is None or not value.encrypted:
            return value.raw

        if self._kms is None:
            raise CredentialDecryptionError(field, "no KMS client configured")

        try:
            ciphertext = base64.b64decode(value.raw.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CredentialDecryptionError(field, "value is not base64") from exc

        try:
            plaintext = await self._kms.decrypt(key_id, ciphertext)
        except Exception as exc:
            reason = exc.reason if isinstance(exc, CredentialDecryptionError) else repr(exc)
            raise CredentialDecryptionError(
                field, f"KMS decrypt with key {key_id!r} failed: {reason}"
            ) from exc

        try:
            text = plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CredentialDecryptionError(field, "plaintext is not UTF-8") from exc

        logger.info("Decrypted field=%s with key=%s", field, key_id)
        return text

    async def resolve_connection(
        self,
        config: PipelineConfig,
        properties: Mapping[str, str],
    ) -> ResolvedConnection:
        key_id = config.kms_encryption_key
        url = await self.resolve(
            config.encryptable("connection_url"), key_id, field="connection_url"
        )
        username = await self.resolve(
            config.encryptable("username"), key_id, field="username"
        )
        password = await self.resolve(
            config.encryptable("password"), key_id, field="password"
        )
        return ResolvedConnection(
            url=url or "",
            username=username,
            password=password,
            properties=dict(properties),
        )
