from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from lecture_studio.processing.audio import FasterWhisperTranscriptionService, TranscriptionError
from lecture_studio.processing.documents import (
    DocumentProcessingError,
    PyMuPDFDocumentProcessor,
    get_document_page_count,
)
from lecture_studio.services.storage import DocumentRecord, MediaRecord


def _media(media_id: str, path: str, order: int) -> MediaRecord:
    return MediaRecord(
        id=media_id,
        lecture_id="lecture",
        media_type="audio",
        sequence_order=order,
        duration_milliseconds=0,
        file_path=path,
        original_filename=None,
    )


class FakeWhisperModel:
    def __init__(self, results) -> None:
        self.results = results

    def transcribe(self, path, beam_size=5):
        outcome = self.results[path]
        if isinstance(outcome, Exception):
            raise outcome
        segments, duration = outcome
        raw = (
            SimpleNamespace(start=start, end=end, text=text, avg_logprob=-0.25)
            for start, end, text in segments
        )
        return raw, SimpleNamespace(duration=duration)


def _service(results) -> FasterWhisperTranscriptionService:
    service = FasterWhisperTranscriptionService()
    service._model = FakeWhisperModel(results)
    return service


def test_segments_are_stitched_onto_one_timeline(tmp_path):
    service = _service(
        {
            "/a.mp3": ([(0.0, 1.5, " First "), (1.5, 3.0, "Second")], 4.0),
            "/b.mp3": ([(0.5, 2.0, "Third")], 0.0),
        }
    )
    progress = []

    records, metrics = service.transcribe(
        [_media("m1", "/a.mp3", 0), _media("m2", "/b.mp3", 1)],
        tmp_path,
        lambda percent, message: progress.append(percent),
    )

    assert [(r.media_id, r.start_millisecond, r.end_millisecond) for r in records] == [
        ("m1", 0, 1500),
        ("m1", 1500, 3000),
        ("m2", 4500, 6000),
    ]
    assert (records[2].original_start_milliseconds, records[2].original_end_milliseconds) == (500, 2000)
    assert records[0].text == "First"
    assert records[0].confidence == -0.25
    assert metrics.is_empty()
    assert progress == [0, 50]
    saved = json.loads((tmp_path / "segments_m1.json").read_text(encoding="utf-8"))
    assert [segment["text"] for segment in saved] == [" First ", "Second"]


def test_backend_failure_names_the_file(tmp_path):
    service = _service({"/broken.mp3": RuntimeError("decoder crashed")})

    with pytest.raises(TranscriptionError, match="failed to transcribe /broken.mp3: decoder crashed"):
        service.transcribe([_media("m1", "/broken.mp3", 0)], tmp_path)


def _document(path) -> DocumentRecord:
    return DocumentRecord(
        id="doc-1",
        lecture_id="lecture",
        document_type="pdf",
        title="Slides",
        file_path=str(path),
        original_filename="slides.pdf",
        page_count=0,
        extraction_status="pending",
    )


def test_pdf_pages_are_rendered_with_their_text(tmp_path):
    fitz = pytest.importorskip("fitz")
    source = tmp_path / "slides.pdf"
    with fitz.open() as pdf:
        for text in ("Entropy basics", "Second law"):
            page = pdf.new_page()
            page.insert_text((72, 72), text)
        pdf.save(str(source))
    output = tmp_path / "pages"
    progress = []

    pages, _ = PyMuPDFDocumentProcessor(dpi=36).process(
        _document(source), output, "en", lambda percent, message: progress.append(message)
    )

    assert [page.page_number for page in pages] == [1, 2]
    assert pages[0].extracted_text == "Entropy basics"
    assert (output / "page-0002.png").exists()
    assert progress == ["Processed page 1/2", "Processed page 2/2"]
    assert get_document_page_count(source) == 2


def test_missing_document_is_reported(tmp_path):
    pytest.importorskip("fitz")

    with pytest.raises(DocumentProcessingError, match="document file not found"):
        PyMuPDFDocumentProcessor().process(_document(tmp_path / "gone.pdf"), tmp_path / "out", "en")
