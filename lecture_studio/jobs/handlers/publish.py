"""Handler exporting a stored tool to a document file."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ...export.assembler import ExportAssembler, ExportOptions
from ..models import (
    Job,
    JobContext,
    ProgressCallback,
    payload_bool,
    payload_string,
    require_payload_string,
)


class PublishMaterialHandler:
    def __init__(self, assembler: ExportAssembler) -> None:
        self._assembler = assembler

    def __call__(self, job: Job, context: JobContext, update: ProgressCallback) -> Optional[Dict[str, Any]]:
        payload = job.payload
        tool_id = require_payload_string(payload, "tool_id")
        options = ExportOptions(
            format=payload_string(payload, "format", "pdf").lower(),
            include_images=payload_bool(payload, "include_images", True),
            include_qr_code=payload_bool(payload, "include_qr_code", False),
            language_code=payload_string(payload, "language_code"),
        )
        file_path, export_format = self._assembler.export(tool_id, options, update)
        return {"file_path": str(file_path), "format": export_format}


__all__ = ["PublishMaterialHandler"]
