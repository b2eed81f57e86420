from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
import time
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, urlencode

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.errors import ApiError

logger = logging.getLogger(__name__)


class StorageError(ApiError):
    status_code = 500

    def __init__(self, message: str = "Failed to store file", **context):
        super().__init__("UPLOAD_ERROR", message, **context)


def generate_storage_key(owner_id: str | None, extension: str, *, prefix: str = "resumes", now_ms: int | None = None) -> str:
    """``{prefix}/{owner|anonymous}/{epoch_ms}-{hex16}.{ext}``; unique per call."""
    scope = owner_id or "anonymous"
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = secrets.token_hex(8)
    ext = extension.lower().lstrip(".")
    return f"{prefix}/{scope}/{timestamp}-{suffix}.{ext}"


class ObjectStore(Protocol):
    def put_object(self, key: str, data: bytes, *, content_type: str, metadata: dict[str, str]) -> None: ...

    def get_object(self, key: str) -> bytes: ...

    def delete_object(self, key: str) -> None: ...

    def signed_url(self, key: str, *, expires_in: int) -> str: ...


class S3ObjectStore:
    def __init__(self, bucket: str, region: str, access_key_id: str | None = None, secret_access_key: str | None = None):
        self._bucket = bucket
        self._client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def put_object(self, key: str, data: bytes, *, content_type: str, metadata: dict[str, str]) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ServerSideEncryption="AES256",
                Metadata=metadata,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("s3_put_failed key=%s error=%s", key, exc)
            raise StorageError() from exc

    def get_object(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            logger.error("s3_get_failed key=%s error=%s", key, exc)
            raise StorageError("Failed to read stored file") from exc

    def delete_object(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("s3_delete_failed key=%s error=%s", key, exc)
            raise StorageError("Failed to delete stored file") from exc

    def signed_url(self, key: str, *, expires_in: int) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("s3_presign_failed key=%s error=%s", key, exc)
            raise StorageError("Failed to generate download URL") from exc


class LocalObjectStore:
    """Filesystem store whose download links are HMAC-signed and served by the files router."""

    def __init__(self, root: str, signing_secret: str, base_url: str):
        self._root = Path(root).resolve()
        self._secret = signing_secret.encode("utf-8")
        self._base_url = base_url.rstrip("/")

    def ensure_root(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise StorageError("Invalid storage key")
        return path

    def put_object(self, key: str, data: bytes, *, content_type: str, metadata: dict[str, str]) -> None:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            sidecar = {"contentType": content_type, "serverSideEncryption": "AES256", "metadata": metadata}
            path.with_name(path.name + ".meta.json").write_text(json.dumps(sidecar), encoding="utf-8")
        except OSError as exc:
            logger.error("local_put_failed key=%s error=%s", key, exc)
            raise StorageError() from exc

    def get_object(self, key: str) -> bytes:
        try:
            return self._path_for(key).read_bytes()
        except OSError as exc:
            raise StorageError("Failed to read stored file") from exc

    def read_metadata(self, key: str) -> dict:
        path = self._path_for(key)
        try:
            return json.loads(path.with_name(path.name + ".meta.json").read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}

    def delete_object(self, key: str) -> None:
        path = self._path_for(key)
        for target in (path, path.with_name(path.name + ".meta.json")):
            target.unlink(missing_ok=True)

    def _signature(self, key: str, expires: int) -> str:
        return hmac.new(self._secret, f"{key}:{expires}".encode("utf-8"), hashlib.sha256).hexdigest()

    def signed_url(self, key: str, *, expires_in: int) -> str:
        # Nonce keeps successive links distinct within the same second.
        expires = int(time.time()) + int(expires_in)
        nonce = secrets.token_hex(4)
        signature = self._signature(f"{key}:{nonce}", expires)
        query = urlencode({"expires": expires, "nonce": nonce, "signature": signature})
        return f"{self._base_url}/api/files/{quote(key)}?{query}"

    def verify(self, key: str, *, expires: int, nonce: str, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        expected = self._signature(f"{key}:{nonce}", expires)
        return hmac.compare_digest(expected, signature)


_store: ObjectStore | None = None


def get_object_store() -> ObjectStore:
    global _store
    if _store is None:
        if settings.storage_backend == "local":
            _store = LocalObjectStore(
                settings.storage_local_root,
                settings.storage_signing_secret,
                settings.public_base_url,
            )
        else:
            _store = S3ObjectStore(
                settings.aws_s3_bucket,
                settings.aws_region,
                settings.aws_access_key_id,
                settings.aws_secret_access_key,
            )
    return _store


def set_object_store(store: ObjectStore | None) -> None:
    global _store
    _store = store
