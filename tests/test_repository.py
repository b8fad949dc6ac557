from __future__ import annotations

from lecture_studio.services.storage import (
    LectureRepository,
    PageRecord,
    SourceReferenceRecord,
    TranscriptSegmentRecord,
)


def _segment(media_id: str, start: int, end: int, text: str, *, offset: int = 0) -> TranscriptSegmentRecord:
    return TranscriptSegmentRecord(
        media_id=media_id,
        start_millisecond=start + offset,
        end_millisecond=end + offset,
        original_start_milliseconds=start,
        original_end_milliseconds=end,
        text=text,
    )


def test_exam_and_lecture_lifecycle(repository: LectureRepository) -> None:
    exam_id = repository.create_exam("Thermodynamics", "Second year course")
    lecture_id = repository.create_lecture(exam_id, "First Law", specified_date="2024-03-05")

    exam = repository.get_exam(exam_id)
    lecture = repository.get_lecture(lecture_id)

    assert exam is not None and exam.title == "Thermodynamics"
    assert lecture is not None
    assert lecture.exam_id == exam_id
    assert lecture.status == "processing"
    assert lecture.specified_date == "2024-03-05"

    repository.update_lecture_status(lecture_id, "ready")
    assert [item.id for item in repository.list_lectures(exam_id, status="ready")] == [lecture_id]
    assert repository.list_lectures(exam_id, status="failed") == []


def test_transcript_segments_update_media_durations(repository: LectureRepository) -> None:
    exam_id = repository.create_exam("Physics")
    lecture_id = repository.create_lecture(exam_id, "Waves")
    first = repository.add_media(lecture_id, "/media/part1.mp3", original_filename="part1.mp3", sequence_order=0)
    second = repository.add_media(lecture_id, "/media/part2.mp3", sequence_order=1)

    transcript_id = repository.prepare_transcript(lecture_id, "en")
    assert repository.prepare_transcript(lecture_id, "en") == transcript_id

    repository.replace_transcript_segments(
        transcript_id,
        [
            _segment(first, 0, 4000, "Waves carry energy."),
            _segment(first, 4000, 9000, "They do not carry matter."),
            _segment(second, 0, 3000, "Interference follows.", offset=9000),
        ],
    )

    media = {item.id: item for item in repository.list_media(lecture_id)}
    assert media[first].duration_milliseconds == 9000
    assert media[second].duration_milliseconds == 3000
    assert repository.get_transcript_text(lecture_id) == (
        "Waves carry energy. They do not carry matter. Interference follows."
    )


def test_lecture_becomes_ready_when_everything_completed(repository: LectureRepository) -> None:
    exam_id = repository.create_exam("Chemistry")
    lecture_id = repository.create_lecture(exam_id, "Bonds")
    document_id = repository.add_document(lecture_id, "Slides", "/docs/slides.pdf")

    assert repository.refresh_lecture_readiness(lecture_id) is False

    repository.replace_document_pages(
        document_id,
        [PageRecord(document_id, 1, "/img/page-0001.png", "Covalent bonds")],
    )

    assert repository.refresh_lecture_readiness(lecture_id) is True
    assert repository.get_lecture(lecture_id).status == "ready"
    document = repository.list_documents(lecture_id)[0]
    assert document.extraction_status == "completed"
    assert document.page_count == 1


def test_page_image_map_uses_filename_and_title(repository: LectureRepository) -> None:
    exam_id = repository.create_exam("Biology")
    lecture_id = repository.create_lecture(exam_id, "Cells")
    document_id = repository.add_document(
        lecture_id, "Cell Slides", "/docs/cells.pdf", original_filename="cells.pdf"
    )
    repository.replace_document_pages(
        document_id,
        [
            PageRecord(document_id, 1, "/img/p1.png", "Membrane"),
            PageRecord(document_id, 2, None, "No image"),
        ],
    )

    mapping = repository.build_page_image_map(exam_id)

    assert mapping == {"cells.pdf:1": "/img/p1.png", "Cell Slides:1": "/img/p1.png"}


def test_tool_and_references_round_trip(repository: LectureRepository) -> None:
    exam_id = repository.create_exam("History")
    tool_id = repository.save_tool(
        exam_id,
        "guide",
        "The Renaissance",
        "# The Renaissance\n",
        language_code="en",
        references=[
            SourceReferenceRecord(
                tool_id="",
                source_type="document",
                source_id="renaissance.pdf",
                metadata={"footnote_number": 1, "description": "Map of Florence", "pages": [3, 4]},
            )
        ],
    )

    tool = repository.get_tool(tool_id)
    references = repository.list_source_references(tool_id)

    assert tool is not None
    assert tool.type == "guide"
    assert tool.language_code == "en"
    assert len(references) == 1
    assert references[0].source_id == "renaissance.pdf"
    assert references[0].metadata["pages"] == [3, 4]
