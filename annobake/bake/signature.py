from __future__ import annotations

import asyncio
import base64
import binascii
import io
import re
from dataclasses import dataclass

from reportlab.lib.utils import ImageReader

from annobake.errors import InvalidSignatureError, UnsupportedImageError


DATA_URL_RE = re.compile(r'^data:image/(png|jpeg|jpg);base64,(.+)$', re.DOTALL)

PNG_MAGIC = b'\x89PNG\r\n\x1a\n'
JPEG_MAGIC = b'\xff\xd8\xff'


@dataclass(frozen=True)
class DecodedImage:
    subtype: str
    data: bytes


@dataclass(frozen=True)
class SignatureImage:
    subtype: str
    reader: ImageReader
    width: float
    height: float


def _preview(value: str, limit: int = 40) -> str:
    token = str(value or '')
    return token if len(token) <= limit else token[:limit] + '...'


def decode_data_url(value: str) -> DecodedImage:
    text = str(value or '').strip()
    match = DATA_URL_RE.match(text)
    if match is None:
        raise InvalidSignatureError(
            'signature is not a data:image/png or data:image/jpeg base64 URL',
            preview=_preview(text),
        )

    subtype = match.group(1).lower()
    if subtype == 'jpg':
        subtype = 'jpeg'

    payload = re.sub(r'\s+', '', match.group(2))
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidSignatureError(
            f'signature payload is not valid base64: {exc}',
            preview=_preview(text),
        ) from exc
    if not data:
        raise InvalidSignatureError('signature payload is empty', preview=_preview(text))

    magic = PNG_MAGIC if subtype == 'png' else JPEG_MAGIC
    if not data.startswith(magic):
        raise UnsupportedImageError(subtype, f'decoded bytes are not a {subtype.upper()} image')

    return DecodedImage(subtype=subtype, data=data)


def open_signature_image(value: str) -> SignatureImage:
    decoded = decode_data_url(value)
    try:
        reader = ImageReader(io.BytesIO(decoded.data))
        width, height = reader.getSize()
    except Exception as exc:
        raise UnsupportedImageError(decoded.subtype, f'cannot read {decoded.subtype} image: {exc}') from exc
    if width <= 0 or height <= 0:
        raise UnsupportedImageError(decoded.subtype, f'image has no area ({width}x{height})')
    return SignatureImage(
        subtype=decoded.subtype,
        reader=reader,
        width=float(width),
        height=float(height),
    )


async def load_signature_image(value: str) -> SignatureImage:
    return await asyncio.to_thread(open_signature_image, value)
