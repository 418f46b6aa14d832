import logging
import os
import pathlib
import re
import time
import unicodedata
from typing import Optional

from google.cloud import storage

logger = logging.getLogger("cotacao.storage")


class StorageError(Exception):
    pass


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value or "")
    ascii_only = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-zA-Z0-9_-]+", "-", ascii_only)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug.lower()


def build_image_path(codigo: str, filename: Optional[str], now_ms: Optional[int] = None) -> str:
    ext = "png"
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].lower() or "png"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"desenhos/{slugify(codigo)}_{stamp}.{ext}"


class StorageClient:
    def __init__(self) -> None:
        self.bucket_name = os.getenv("GCS_BUCKET_DESENHOS")
        self.use_local = os.getenv("LOCAL_STORAGE", "0") == "1" or not self.bucket_name
        self.base_dir = pathlib.Path(os.getenv("LOCAL_STORAGE_DIR", "storage")).resolve()
        if self.use_local:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._client = storage.Client() if self.bucket_name and not self.use_local else None

    def _ensure_bucket(self):
        if not self.bucket_name or not self._client:
            raise StorageError("GCS_BUCKET_DESENHOS nao configurado.")
        return self._client.bucket(self.bucket_name)

    def upload_bytes(self, content: bytes, dest_path: str, content_type: str) -> str:
        if self.use_local:
            full_path = self.base_dir / dest_path
            if full_path.exists():
                raise StorageError(f"Arquivo ja existe: {dest_path}")
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(content)
            return dest_path
        bucket = self._ensure_bucket()
        blob = bucket.blob(dest_path)
        try:
            # if_generation_match=0: nunca sobrescreve um objeto existente
            blob.upload_from_string(content, content_type=content_type, if_generation_match=0)
        except Exception as exc:
            raise StorageError(str(exc)) from exc
        return dest_path

    def public_url(self, dest_path: str) -> str:
        if self.use_local:
            return (self.base_dir / dest_path).as_uri()
        return self._ensure_bucket().blob(dest_path).public_url

    def delete(self, dest_path: str) -> None:
        if self.use_local:
            full_path = self.base_dir / dest_path
            if not full_path.exists():
                raise StorageError(f"Arquivo nao encontrado: {dest_path}")
            full_path.unlink()
            return
        try:
            self._ensure_bucket().blob(dest_path).delete()
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(str(exc)) from exc
        logger.info("objeto removido path=%s", dest_path)


def get_storage() -> StorageClient:
    return StorageClient()
