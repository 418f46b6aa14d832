import logging
from io import BytesIO
from typing import Iterable, Optional

from PIL import Image, UnidentifiedImageError
from sqlalchemy.orm import Session

from cotacao.db import models
from cotacao.services.storage import StorageClient, StorageError, build_image_path

logger = logging.getLogger("cotacao.desenhos")

IMAGE_FORMATS = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp", "GIF": "image/gif"}


class InvalidImageError(Exception):
    pass


class DesenhoInUseError(Exception):
    def __init__(self, referencias: int):
        super().__init__(f"Desenho vinculado a {referencias} OP(s).")
        self.referencias = referencias


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def next_etiqueta(cotas: Iterable) -> str:
    """Primeira letra livre de A a Z; depois o primeiro P<n> livre a partir de P27."""
    used = {(cota.etiqueta or "").upper() for cota in cotas}
    for code in range(ord("A"), ord("Z") + 1):
        letter = chr(code)
        if letter not in used:
            return letter
    numero = 27
    while f"P{numero}" in used:
        numero += 1
    return f"P{numero}"


def inspect_image(data: bytes, max_bytes: int) -> tuple[str, int, int]:
    if not data:
        raise InvalidImageError("Arquivo de imagem vazio.")
    if len(data) > max_bytes:
        raise InvalidImageError("Arquivo excede o tamanho maximo permitido.")
    try:
        image = Image.open(BytesIO(data))
        image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise InvalidImageError("Arquivo enviado nao e uma imagem valida.") from exc
    if image.format not in IMAGE_FORMATS:
        raise InvalidImageError("Formato de imagem nao suportado. Use PNG ou JPG.")
    width, height = image.size
    return IMAGE_FORMATS[image.format], width, height


def create_desenho(
    db: Session,
    storage: StorageClient,
    codigo: str,
    nome: str,
    descricao: Optional[str],
    filename: Optional[str],
    data: bytes,
    max_bytes: int,
) -> models.Desenho:
    content_type, width, height = inspect_image(data, max_bytes)
    path = build_image_path(codigo, filename)
    storage.upload_bytes(data, path, content_type)
    desenho = models.Desenho(
        codigo=codigo,
        nome=nome,
        descricao=descricao or None,
        imagem_url=storage.public_url(path),
        imagem_path=path,
        largura_px=width,
        altura_px=height,
        archived=False,
    )
    db.add(desenho)
    try:
        db.commit()
    except Exception:
        db.rollback()
        # compensa o upload ja feito
        try:
            storage.delete(path)
        except StorageError:
            logger.warning("upload orfao nao removido path=%s", path)
        raise
    db.refresh(desenho)
    return desenho


def count_references(db: Session, desenho_id: str) -> int:
    return db.query(models.OP).filter(models.OP.desenho_id == desenho_id).count()


def delete_desenho(
    db: Session,
    storage: StorageClient,
    desenho: models.Desenho,
    confirmar: bool = False,
) -> dict:
    """
    Desvincula as OPs (desenho_id = NULL), remove a imagem e apaga o desenho
    com suas cotas. Sem confirmacao, recusa desenhos ainda referenciados.
    """
    referencias = count_references(db, desenho.id)
    if referencias and not confirmar:
        raise DesenhoInUseError(referencias)
    if referencias:
        db.query(models.OP).filter(models.OP.desenho_id == desenho.id).update(
            {models.OP.desenho_id: None}, synchronize_session=False
        )
        db.commit()

    aviso = None
    if desenho.imagem_path:
        try:
            storage.delete(desenho.imagem_path)
        except StorageError as exc:
            aviso = f"Nao foi possivel remover o arquivo do storage ({exc})."
            logger.warning("falha ao remover imagem desenho=%s erro=%s", desenho.codigo, exc)

    db.delete(desenho)
    db.commit()
    return {"ops_desvinculadas": referencias, "aviso": aviso}
