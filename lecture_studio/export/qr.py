"""QR code images linking to exported documents."""

from __future__ import annotations

import logging
from pathlib import Path

import qrcode


LOGGER = logging.getLogger(__name__)


class QRCodeRenderer:
    def __init__(self, *, box_size: int = 10, border: int = 2) -> None:
        self._box_size = box_size
        self._border = border

    def render(self, data: str, output_path: Path) -> Path:
        """Write a PNG QR code encoding *data* to *output_path*."""

        code = qrcode.QRCode(box_size=self._box_size, border=self._border)
        code.add_data(data)
        code.make(fit=True)
        image = code.make_image()
        output_path = Path(output_path)
        image.save(str(output_path))
        LOGGER.debug("Rendered QR code for %s at %s", data, output_path)
        return output_path


__all__ = ["QRCodeRenderer"]
