"""Exporting stored tools as documents."""

from .assembler import EXPORT_FORMATS, ExportAssembler, ExportOptions
from .qr import QRCodeRenderer
from .uploads import TmpFilesUploader, UploadError

__all__ = [
    "EXPORT_FORMATS",
    "ExportAssembler",
    "ExportOptions",
    "QRCodeRenderer",
    "TmpFilesUploader",
    "UploadError",
]
