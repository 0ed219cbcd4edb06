from __future__ import annotations

import asyncio
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from src.config import Settings, get_settings
from src.jdbc_loader.core.exceptions import CredentialDecryptionError

logger = logging.getLogger("jdbc_loader")


class AwsKmsClient:
    """KMS decrypt через boto3 (вызов синхронный, уводим в поток)."""

    def __init__(self, settings: Settings | None = None, client=None) -> None:
        s = settings or get_settings()
        if client is None:
            kwargs = {}
            if s.kms_region:
                kwargs["region_name"] = s.kms_region
            if s.kms_endpoint_url:
                kwargs["endpoint_url"] = s.kms_endpoint_url
            client = boto3.client("kms", **kwargs)
        self._client = client

    def _decrypt_sync(self, key_id: str, ciphertext: bytes) -> bytes:
        try:
            resp = self._client.decrypt(CiphertextBlob=ciphertext, KeyId=key_id)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "ClientError")
            raise CredentialDecryptionError("ciphertext", f"KMS {code} for key {key_id!r}") from exc
        except BotoCoreError as exc:
            raise CredentialDecryptionError("ciphertext", f"KMS unavailable: {exc}") from exc
        return resp["Plaintext"]

    async def decrypt(self, key_id: str, ciphertext: bytes) -> bytes:
        return await asyncio.to_thread(self._decrypt_sync, key_id, ciphertext)
