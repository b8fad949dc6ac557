from __future__ import annotations

import pytest

from lecture_studio.prompts import manager as prompts
from lecture_studio.prompts.manager import PromptError, PromptManager, render


def test_render_substitutes_known_placeholders_only():
    assert render("Hi {{name}}, {{unknown}}", {"name": "Ada"}) == "Hi Ada, {{unknown}}"
    assert render("{{value}}", {"value": None}) == ""
    assert render("untouched {{name}}") == "untouched {{name}}"


def test_render_is_single_pass_and_keeps_citation_markers():
    rendered = render(
        "{{first}} {{second}} {{{Intro-slides.pdf-p2}}}",
        {"first": "{{second}}", "second": "two"},
    )

    assert rendered == "{{second}} two {{{Intro-slides.pdf-p2}}}"


def test_manager_caches_templates(tmp_path):
    template = tmp_path / "general" / "hello.md"
    template.parent.mkdir()
    template.write_text("Hello {{who}}", encoding="utf-8")
    manager = PromptManager(tmp_path)

    assert manager.get("general/hello.md", {"who": "class"}) == "Hello class"
    template.write_text("changed", encoding="utf-8")
    assert manager.load("general/hello.md") == "Hello {{who}}"


def test_manager_rejects_missing_and_escaping_paths(tmp_path):
    manager = PromptManager(tmp_path / "templates")

    with pytest.raises(PromptError, match="escapes template directory"):
        manager.load("../secrets.md")
    with pytest.raises(PromptError, match="failed to read prompt general/none.md"):
        manager.load("general/none.md")


@pytest.mark.parametrize(
    "name",
    [value for key, value in vars(prompts).items() if key.isupper() and isinstance(value, str) and value.endswith(".md")],
)
def test_bundled_templates_exist(name):
    assert PromptManager().load(name).strip()


def test_language_requirement_template_is_filled():
    text = PromptManager().get(
        prompts.LANGUAGE_REQUIREMENT, {"language": "Italian", "bcp_47_lang_code": "it"}
    )

    assert "Italian" in text
    assert "{{" not in text
