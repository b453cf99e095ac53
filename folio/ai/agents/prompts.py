"""Prompt builders for outline planning and unit writing."""

from __future__ import annotations

import json
from typing import Final

from folio.ai.pipeline.contracts import GenerationInput, OutlineUnit

LANGUAGE_NAMES: Final[dict[str, str]] = {
  "fr": "français",
  "en": "English",
  "es": "español",
  "de": "Deutsch",
  "it": "italiano",
  "pt": "português",
  "ar": "العربية",
  "zh": "中文",
  "ja": "日本語",
  "ko": "한국어",
  "ru": "русский",
  "hi": "हिन्दी",
}

FALLBACK_MARKER: Final[str] = "*[Content pending generation. Fallback mode enabled]*"

_KIND_GUIDANCE: Final[dict[str, str]] = {
  "intro": "Engaging introduction, clear expectations, overview of what follows.",
  "chapter": "Detailed explanations, examples, practical applications, exercises.",
  "conclusion": "Comprehensive summary, actionable next steps, resources.",
}


def language_name(code: str) -> str:
  """Resolve a language code to its display name, defaulting to English."""
  return LANGUAGE_NAMES.get(code.lower(), LANGUAGE_NAMES["en"])


def _sizing(fast_mode: bool) -> dict[str, str]:
  if fast_mode:
    return {"unit_count": "8-12", "core_count": "6-10", "total_words": "20,000-25,000", "unit_words": "1,800-2,500"}
  return {"unit_count": "12-18", "core_count": "10-16", "total_words": "25,000-30,000", "unit_words": "2,000-2,800"}


def _example_outline(request: GenerationInput) -> str:
  core_words = 2200 if request.fast_mode else 2400
  example = {
    "title": request.title,
    "chapters": [
      {"type": "intro", "title": "Introduction", "summary": "Overview and roadmap", "target_words": core_words - 200},
      {"type": "chapter", "title": "Core Chapter 1", "summary": "Detailed analysis of a key concept", "target_words": core_words},
      {"type": "chapter", "title": "Core Chapter 2", "summary": "Practical applications", "target_words": core_words},
      {"type": "conclusion", "title": "Conclusion", "summary": "Summary and next steps", "target_words": core_words - 400},
    ],
    "total_estimated_words": 20000 if request.fast_mode else 25000,
  }
  return json.dumps(example, ensure_ascii=False, indent=2)


def render_outline_prompt(request: GenerationInput) -> str:
  """Build the single planning prompt that must yield the outline JSON."""
  sizing = _sizing(request.fast_mode)
  language = language_name(request.language)
  return (
    f'Create a {request.template} ebook structure for "{request.title}" on: {request.prompt}.\n\n'
    f"LANGUAGE: Write EVERYTHING in {language} ({request.language}). All titles and summaries must be in this language.\n\n"
    "STRUCTURE:\n"
    f"- {sizing['unit_count']} chapters total\n"
    f"- {sizing['total_words']} words overall\n"
    f"- Intro + {sizing['core_count']} core chapters + Conclusion\n"
    f"- Each chapter: {sizing['unit_words']} words\n\n"
    "Respond with JSON only, no prose, matching this shape (chapter count and titles are examples):\n"
    f"{_example_outline(request)}"
  )


def render_unit_prompt(request: GenerationInput, unit: OutlineUnit) -> str:
  """Build the prompt for one planned unit."""
  language = language_name(request.language)
  return (
    f'Write a comprehensive {unit.target_size}-word chapter titled "{unit.title}" for a {request.template} ebook.\n\n'
    f"LANGUAGE: Write EVERYTHING in {language} ({request.language}).\n\n"
    f"Topic: {request.prompt}\n"
    f"Chapter type: {unit.kind}\n"
    f"Chapter summary: {unit.summary}\n\n"
    "Requirements:\n"
    f"- TARGET: {unit.target_size} words minimum\n"
    f"- Markdown format starting with '## {unit.title}', then ### sections and #### subsections\n"
    f"- Professional {request.template} tone and style\n"
    f"- {_KIND_GUIDANCE[unit.kind]}\n"
    "- Include specific examples, case studies and actionable advice\n\n"
    "Write the complete chapter:"
  )


def build_fallback_content(unit: OutlineUnit) -> str:
  """Placeholder written when every provider route failed for a unit."""
  summary = unit.summary.strip() or unit.title
  return f"## {unit.title}\n\nThis chapter covers: {summary}.\n\n{FALLBACK_MARKER}\n\nKey points to develop:\n- {unit.title}: core ideas\n- Practical examples\n- Takeaways\n\n---"


def render_manual_unit(title: str, content: str) -> str:
  """Format caller-supplied unit content like generated units."""
  body = content.strip()
  if body.startswith("#"):
    return body
  return f"## {title}\n\n{body}"
