import io
import os
from uuid import uuid4

THUMBNAIL_FOLDER = "thumbnails"


def _get_required_env(var_name: str) -> str:
    value = os.getenv(var_name, "").strip()
    if not value:
        raise RuntimeError(f"Variável de ambiente obrigatória ausente: {var_name}")
    return value


def _get_r2_client():
    r2_account_id = _get_required_env("R2_ACCOUNT_ID")
    r2_access_key_id = _get_required_env("R2_ACCESS_KEY_ID")
    r2_secret_access_key = _get_required_env("R2_SECRET_ACCESS_KEY")

    import boto3

    return boto3.client(
        "s3",
        endpoint_url=f"https://{r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=r2_access_key_id,
        aws_secret_access_key=r2_secret_access_key,
        region_name="auto",
    )


def persist_thumbnail(image_bytes: bytes, content_type: str = "image/jpeg") -> str:
    """Envia o preview ao R2 e devolve a URL pública."""
    if not image_bytes:
        raise ValueError("Imagem vazia")

    r2_bucket_name = _get_required_env("R2_BUCKET_NAME")
    r2_public_url = _get_required_env("R2_PUBLIC_URL").rstrip("/")

    object_key = f"{THUMBNAIL_FOLDER}/{uuid4().hex}.jpg"
    _get_r2_client().upload_fileobj(
        io.BytesIO(image_bytes),
        r2_bucket_name,
        object_key,
        ExtraArgs={"ContentType": content_type},
    )
    return f"{r2_public_url}/{object_key}"
