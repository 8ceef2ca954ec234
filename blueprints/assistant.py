"""AI study assistant routes. Provider failures come back as degraded answers, not errors."""

from __future__ import annotations

from flask import Blueprint, jsonify

from ai_assistant import answer_study_question, generate_study_plan, get_study_resource_recommendations
from extensions import limiter
from helpers import json_body
from validation import ValidationError

bp = Blueprint("assistant", __name__)

AI_RATE_LIMIT = "20 per minute"


def _text(data: dict, key: str, default: str = "") -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string.")
    return value.strip()


@bp.route("/api/ai/recommendations", methods=["POST"])
@limiter.limit(AI_RATE_LIMIT)
def api_recommendations():
    data = json_body()
    subject = _text(data, "subject")
    if not subject:
        raise ValidationError("subject is required.")
    recommendations = get_study_resource_recommendations(
        subject, _text(data, "topic"), _text(data, "userLevel", "beginner") or "beginner",
    )
    return jsonify({"recommendations": recommendations})


@bp.route("/api/ai/question", methods=["POST"])
@limiter.limit(AI_RATE_LIMIT)
def api_question():
    data = json_body()
    question = _text(data, "question")
    if not question:
        raise ValidationError("question is required.")
    answer = answer_study_question(question, _text(data, "context") or None)
    return jsonify({"answer": answer})


@bp.route("/api/ai/study-plan", methods=["POST"])
@limiter.limit(AI_RATE_LIMIT)
def api_study_plan():
    data = json_body()
    subjects = data.get("subjects")
    if not isinstance(subjects, list) or not subjects or not all(isinstance(s, str) for s in subjects):
        raise ValidationError("subjects must be a non-empty list of strings.")
    plan = generate_study_plan(subjects, _text(data, "timeAvailable"), _text(data, "goals"))
    return jsonify({"plan": plan})
