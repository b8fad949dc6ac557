from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lecture_studio.bootstrap import Bootstrapper
from lecture_studio.config import AppConfig
from lecture_studio.jobs.store import JobStore
from lecture_studio.llm.provider import ChatChunk, ChatRequest, LLMProviderError
from lecture_studio.prompts import manager as prompts
from lecture_studio.prompts.manager import PromptManager
from lecture_studio.services.storage import LectureRepository


Scripted = Union[str, Exception, ChatChunk]


class ScriptedProvider:
    """LLM provider replaying canned responses in order and recording requests."""

    name = "scripted"

    def __init__(
        self,
        responses: Optional[Sequence[Scripted]] = None,
        *,
        responder: Optional[Callable[[ChatRequest], Scripted]] = None,
        cost: float = 0.0,
    ) -> None:
        self._responses: List[Scripted] = list(responses or [])
        self._responder = responder
        self._cost = cost
        self._lock = threading.Lock()
        self.requests: List[ChatRequest] = []

    def _next(self, request: ChatRequest) -> Scripted:
        with self._lock:
            self.requests.append(request)
            if self._responder is not None:
                return self._responder(request)
            if not self._responses:
                raise LLMProviderError("no scripted response left")
            return self._responses.pop(0)

    def chat(self, request: ChatRequest) -> Iterator[ChatChunk]:
        response = self._next(request)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, ChatChunk):
            yield response
            return
        half = len(response) // 2
        yield ChatChunk(text=response[:half])
        yield ChatChunk(text=response[half:], input_tokens=10, output_tokens=5, cost=self._cost)

    @property
    def prompts(self) -> List[str]:
        return [request.messages[-1].content for request in self.requests]


def make_config(tmp_path: Path, **overrides) -> AppConfig:
    mapping = {
        "storage_root": "storage",
        "database_file": "storage/lecture_studio.db",
        "llm": {"model": "test/default-model"},
        "safety": {"maximum_retries": 3, "maximum_cost_per_job": 0.0},
        "jobs": {"workers": 1, "poll_interval": 0.05},
    }
    mapping.update(overrides)
    return AppConfig.from_mapping(mapping, base_path=tmp_path)


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.chdir(tmp_path)
    config = make_config(tmp_path)
    Bootstrapper(config).initialize()
    return config


@pytest.fixture()
def repository(temp_config: AppConfig) -> LectureRepository:
    return LectureRepository(temp_config)


@pytest.fixture()
def job_store(temp_config: AppConfig) -> JobStore:
    return JobStore(temp_config)


# Minimal templates whose first line names the task, so scripted providers can route on it.
PROMPT_STUBS = {
    prompts.ANALYZE_LECTURE_STRUCTURE: (
        "TASK outline\n{{language_requirement}}\n"
        "{{minimum_section_count}}-{{maximum_section_count}}\n{{transcript}}"
    ),
    prompts.CLEAN_DOCUMENT_TITLE: "TASK clean-title\n{{title}}",
    prompts.CORRECT_PROJECT_TITLE_DESCRIPTION: "TASK correct-project\n{{title}}\n{{description}}",
    prompts.FORMAT_FOOTNOTES: "TASK format-footnotes\n{{footnotes}}",
    prompts.GENERATE_CHAT_QUESTIONS: "TASK questions\n{{document_content}}",
    prompts.GENERATE_DOCUMENT_DESCRIPTION: "TASK abstract\n{{language_requirement}}\n{{document_content}}",
    prompts.GET_RELEVANT_PAGES: "TASK match\n{{reference_files}}",
    prompts.PARSE_FOOTNOTES: "TASK parse-footnotes\n{{footnotes}}",
    prompts.VERIFY_SECTION_ADHERENCE: "TASK adherence\n{{section_title}}",
    prompts.CITATION_INSTRUCTIONS: "cite",
    prompts.GENERATE_FLASHCARDS: "TASK flashcards\n{{language_requirement}}",
    prompts.GENERATE_QUIZ: "TASK quiz\n{{language_requirement}}",
    prompts.LANGUAGE_REQUIREMENT: "Write in {{language}} ({{bcp_47_lang_code}})",
    prompts.LATEX_INSTRUCTIONS: "latex",
    prompts.SECTION_WITH_CITATIONS_EXAMPLE: "example with citations",
    prompts.SECTION_WITHOUT_CITATIONS_EXAMPLE: "example",
    prompts.STUDY_GUIDE_INITIAL_CONTEXT: "CONTEXT\n{{language_requirement}}\n{{structure_outline}}",
    prompts.STUDY_GUIDE_SECTION_GENERATION: "TASK section\n{{section_title}}",
    prompts.STUDY_GUIDE_WITH_CITATIONS_EXAMPLE: "guide example with citations",
    prompts.STUDY_GUIDE_WITHOUT_CITATIONS_EXAMPLE: "guide example",
}


def task_of(request: ChatRequest) -> str:
    first_line = request.messages[-1].content.split("\n", 1)[0]
    return first_line[len("TASK "):] if first_line.startswith("TASK ") else first_line


class TaskRouter:
    """Responder returning queued responses per prompt task."""

    def __init__(self, routes: Dict[str, Sequence[Scripted]]) -> None:
        self._routes = {task: list(responses) for task, responses in routes.items()}
        self._lock = threading.Lock()
        self.calls: List[str] = []

    def __call__(self, request: ChatRequest) -> Scripted:
        task = task_of(request)
        with self._lock:
            self.calls.append(task)
            queue = self._routes.get(task)
            if not queue:
                return LLMProviderError(f"no scripted response for task {task}")
            # The last response repeats once the queue is down to it.
            return queue.pop(0) if len(queue) > 1 else queue[0]


@pytest.fixture()
def stub_prompts(tmp_path: Path) -> PromptManager:
    root = tmp_path / "prompt-stubs"
    for relative, text in PROMPT_STUBS.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
    return PromptManager(root)
