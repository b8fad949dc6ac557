"""Prompt templates for the material generator."""

from .manager import PromptError, PromptManager, TEMPLATES_ROOT, render

__all__ = ["PromptError", "PromptManager", "TEMPLATES_ROOT", "render"]
