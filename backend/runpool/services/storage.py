from __future__ import annotations
import io
from datetime import timedelta
from functools import lru_cache
from minio import Minio
from minio.error import S3Error
from runpool.config import settings

def _parse_endpoint(ep: str) -> tuple[str, bool]:
    # Return (host:port, secure)
    secure = ep.startswith("https://")
    host = ep.replace("http://", "").replace("https://", "")
    return host, secure

@lru_cache(maxsize=1)
def _client() -> Minio:
    host, secure = _parse_endpoint(settings.s3_endpoint)
    client = Minio(host, access_key=settings.s3_access_key, secret_key=settings.s3_secret_key, secure=secure)
    try:
        if not client.bucket_exists(settings.s3_bucket_proofs):
            client.make_bucket(settings.s3_bucket_proofs)
    except S3Error as e:
        # Concurrent creators race on make_bucket
        if e.code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
            raise
    return client

def proof_key(challenge_id, user_id, proof_token: str, ext: str) -> str:
    return f"proofs/{challenge_id}/{user_id}/{proof_token}.{ext}"

def put_bytes(key: str, data: bytes, content_type: str) -> None:
    _client().put_object(
        settings.s3_bucket_proofs, key, io.BytesIO(data), length=len(data), content_type=content_type
    )

def get_bytes(key: str) -> tuple[bytes, str]:
    """
    Retrieve object from storage.
    Returns (data, content_type).
    """
    try:
        response = _client().get_object(settings.s3_bucket_proofs, key)
        try:
            data = response.read()
            content_type = response.headers.get("Content-Type", "application/octet-stream")
        finally:
            response.close()
            response.release_conn()
        return data, content_type
    except S3Error as e:
        if e.code == "NoSuchKey":
            raise FileNotFoundError(f"Object not found: {key}")
        raise

def presign_get(key: str) -> str:
    return _client().presigned_get_object(
        settings.s3_bucket_proofs, key, expires=timedelta(seconds=settings.s3_presign_expiry_seconds)
    )
