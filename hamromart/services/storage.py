import io, uuid
from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError as TransportError
from hamromart.core.config import settings
from hamromart.core.errors import ExternalServiceError

def _client():
    return Minio(settings.S3_ENDPOINT.replace('http://','').replace('https://',''), access_key=settings.S3_ACCESS_KEY, secret_key=settings.S3_SECRET_KEY, secure=settings.S3_SECURE)

def ensure_bucket(c: Minio):
    if not c.bucket_exists(settings.S3_BUCKET):
        c.make_bucket(settings.S3_BUCKET)

def upload_bytes(data: bytes, content_type: str, ext: str = ''):
    """Store a product image and return ``(object_key, public_url)``."""
    c = _client()
    key = f"products/{uuid.uuid4().hex}{ext}"
    try:
        ensure_bucket(c)
        c.put_object(settings.S3_BUCKET, key, io.BytesIO(data), length=len(data), content_type=content_type)
    except (S3Error, TransportError) as exc:
        raise ExternalServiceError('storage', 'Image storage unavailable') from exc
    scheme = 'https' if settings.S3_SECURE else 'http'
    url = f"{scheme}://{settings.S3_ENDPOINT.replace('http://','').replace('https://','')}/{settings.S3_BUCKET}/{key}"
    return key, url
