"""QR image rendering for document view URLs."""

from __future__ import annotations

import io

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from qrcode.image.pil import PilImage

PNG_MEDIA_TYPE = "image/png"


def render_qr(url: str, *, box_size: int = 10, border: int = 2) -> bytes:
    """Return PNG bytes of a QR code encoding ``url``."""

    code = qrcode.QRCode(
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
        image_factory=PilImage,
    )
    code.add_data(url)
    code.make(fit=True)
    image = code.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue()


__all__ = ["PNG_MEDIA_TYPE", "render_qr"]
