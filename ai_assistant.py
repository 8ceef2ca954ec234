"""
AI study assistant: resource recommendations, Q&A and study plans.

Every function degrades instead of raising: recommendations fall back to an
empty list, free-text answers to a short apology. Provider failures are
logged and never reach the HTTP layer.
"""

from __future__ import annotations

import json
import logging
import re

from flask import current_app, has_app_context

from ai_resilience import resilient_llm_call

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o"

RECOMMENDATION_SYSTEM = (
    "You are a helpful study assistant for university engineering students. "
    "Always respond with valid JSON."
)
QUESTION_SYSTEM = (
    "You are a helpful AI study assistant for university engineering students. "
    "Provide clear, accurate, and educational responses."
)
PLAN_SYSTEM = (
    "You are an expert study planner for engineering students. "
    "Create detailed, actionable study plans."
)

QUESTION_FAILED = "I'm experiencing technical difficulties. Please try again later."
QUESTION_EMPTY = "I'm sorry, I couldn't generate a response right now."
PLAN_FAILED = "Unable to generate study plan. Please try again later."
PLAN_EMPTY = "Unable to generate study plan at this time."

MIN_RELEVANCE, MAX_RELEVANCE = 1, 10


def _settings() -> tuple[str, str, int]:
    """(provider, model, cache_ttl) from app config, with defaults outside an app."""
    if not has_app_context():
        return DEFAULT_PROVIDER, DEFAULT_MODEL, 0
    cfg = current_app.config
    return (
        cfg.get("AI_PROVIDER", DEFAULT_PROVIDER),
        cfg.get("AI_MODEL", DEFAULT_MODEL),
        int(cfg.get("AI_CACHE_TTL", 0)),
    )


def _ask(prompt: str, system: str, json_mode: bool = False, cacheable: bool = False) -> str:
    provider, model, cache_ttl = _settings()
    return resilient_llm_call(
        provider, model, prompt,
        system=system,
        json_mode=json_mode,
        cache_ttl=cache_ttl if cacheable else 0,
    )


# ── Recommendations ─────────────────────────────────────────

def _relevance(value) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return MIN_RELEVANCE
    return max(MIN_RELEVANCE, min(MAX_RELEVANCE, score))


def _normalise_recommendation(item) -> dict | None:
    if not isinstance(item, dict):
        return None
    title = str(item.get("title") or "").strip()
    if not title:
        return None
    rec = {
        "resourceType": str(item.get("resourceType") or "Resource").strip(),
        "title": title,
        "description": str(item.get("description") or "").strip(),
        "relevanceScore": _relevance(item.get("relevanceScore")),
    }
    url = item.get("url")
    if isinstance(url, str) and url.strip():
        rec["url"] = url.strip()
    return rec


def parse_recommendations(raw: str) -> list[dict]:
    """Extract the recommendation list from a model response.

    Accepts {"recommendations": [...]}, a bare JSON list, or either one
    wrapped in prose / code fences.
    """
    data = None
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        json_match = re.search(r"\{[\s\S]*\}|\[[\s\S]*\]", raw or "")
        if json_match:
            try:
                data = json.loads(json_match.group())
            except json.JSONDecodeError:
                data = None

    if isinstance(data, dict):
        data = data.get("recommendations", [])
    if not isinstance(data, list):
        return []

    recs = [r for r in (_normalise_recommendation(item) for item in data) if r]
    recs.sort(key=lambda r: r["relevanceScore"], reverse=True)
    return recs


def get_study_resource_recommendations(subject: str, topic: str, level: str) -> list[dict]:
    prompt = (
        "Provide study resource recommendations for the following:\n"
        f"- Subject: {subject}\n"
        f"- Topic: {topic}\n"
        f"- Student Level: {level}\n\n"
        "Please recommend 5 different types of study resources with practical URLs when possible.\n"
        "Focus on resources that are freely available and suitable for engineering students.\n\n"
        'Respond with a JSON object {"recommendations": [...]} whose items have these fields:\n'
        '- resourceType (e.g. "Video Tutorial", "Documentation", "Practice Problems", '
        '"Research Paper", "Online Course")\n'
        "- title (specific resource name)\n"
        "- description (brief explanation of why it's helpful)\n"
        '- url (actual URL if available, or "Search for: [search terms]" if not)\n'
        "- relevanceScore (1-10 based on how relevant it is)"
    )
    try:
        raw = _ask(prompt, RECOMMENDATION_SYSTEM, json_mode=True, cacheable=True)
    except Exception as e:
        logger.warning("Recommendations unavailable for %s/%s: %s", subject, topic, e)
        return []
    recs = parse_recommendations(raw)
    if not recs:
        logger.warning("Recommendation response had no usable items for %s/%s", subject, topic)
    return recs


# ── Question answering ──────────────────────────────────────

def answer_study_question(question: str, context: str | None = None) -> str:
    if context:
        prompt = (
            f"Context: {context}\n\nQuestion: {question}\n\n"
            "Please provide a helpful answer for this student."
        )
    else:
        prompt = f"Question: {question}\n\nPlease provide a helpful answer for this engineering student."
    try:
        answer = _ask(prompt, QUESTION_SYSTEM)
    except Exception as e:
        logger.warning("Question answering failed: %s", e)
        return QUESTION_FAILED
    return answer.strip() or QUESTION_EMPTY


# ── Study plans ─────────────────────────────────────────────

def generate_study_plan(subjects: list[str], time_available: str, goals: str) -> str:
    prompt = (
        "Create a personalized study plan for a university student with:\n"
        f"- Subjects: {', '.join(subjects)}\n"
        f"- Time Available: {time_available}\n"
        f"- Goals: {goals}\n\n"
        "Please provide a structured weekly study plan with specific time allocations, "
        "study techniques, and milestones."
    )
    try:
        plan = _ask(prompt, PLAN_SYSTEM)
    except Exception as e:
        logger.warning("Study plan generation failed: %s", e)
        return PLAN_FAILED
    return plan.strip() or PLAN_EMPTY
