from datetime import datetime, timedelta, timezone

import pytest

from schemas import Survey, SurveyResponse

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def survey():
    return Survey.model_validate({
        "name": "satisfaccion_servicios",
        "title": "Encuesta de Satisfacción",
        "description": "Queremos conocer su opinión sobre los servicios del conjunto.",
        "category": "satisfaction",
        "created_by": {"user_id": "admin-1", "user_info": {"full_name": "Carlos Ramírez", "role": "admin"}},
        "questions": [
            {"id": "q-rating", "type": "rating", "title": "¿Cómo califica la portería?"},
            {"id": "q-choice", "type": "single_choice", "title": "¿Mejor horario?",
             "config": {"options": [{"value": "morning", "label": "Mañana"},
                                    {"value": "afternoon", "label": "Tarde"}]}},
            {"id": "q-text", "type": "text", "title": "Sugerencias"},
        ],
        "lifecycle": {"target_audience": {"actual_size": 45}},
    })


def response(user_id, rating, choice, status="completed", time_spent=600, skipped=False):
    return {
        "respondent": {"user_id": user_id},
        "answers": [
            {"question_id": "q-rating", "answer": rating, "metadata": {"skipped": skipped}},
            {"question_id": "q-choice", "answer": choice},
            {"question_id": "q-text", "answer": "Más iluminación"},
        ],
        "session": {"status": status, "time_spent": time_spent},
    }


def test_results_summarise_numeric_and_choice_questions(survey):
    survey.responses = [
        SurveyResponse.model_validate(item)
        for item in (
            response("u-1", 4, "morning"),
            response("u-2", 5, "afternoon"),
            response("u-3", 3, "morning"),
            response("u-4", 1, "afternoon", status="in_progress"),
            response("u-5", 2, "morning", skipped=True),
        )
    ]

    results = survey.get_results()

    rating = results["q-rating"]
    assert rating["type"] == "rating"
    assert rating["responses"] == [4, 5, 3]
    assert rating["statistics"] == {"count": 3, "average": 4.0, "min": 3.0, "max": 5.0, "median": 4.0}
    assert results["q-choice"]["statistics"] == {"morning": 3, "afternoon": 1}
    assert results["q-text"]["statistics"] == {}


def test_numeric_results_ignore_non_numbers(survey):
    survey.responses = [
        SurveyResponse.model_validate(item)
        for item in (response("u-1", "4", "morning"), response("u-2", "n/a", "morning"), response("u-3", 2, "morning"))
    ]

    stats = survey.get_results()["q-rating"]["statistics"]

    assert stats["count"] == 2
    assert stats["median"] == 4.0


def test_add_response_updates_analytics(fake_db, survey):
    survey.save(now=NOW)

    survey.add_response(response("u-1", 5, "morning", time_spent=600), now=NOW)
    survey.add_response(response("u-2", 4, "afternoon", status="in_progress", time_spent=60), now=NOW)
    survey.add_response(response("u-3", 4, "afternoon", status="abandoned"), now=NOW)
    survey.add_response(response("u-4", 3, "morning", time_spent=1200), now=NOW)

    analytics = Survey.get(survey.id).analytics
    assert analytics.total_responses == 4
    assert analytics.completed_responses == 2
    assert analytics.partial_responses == 1
    assert analytics.abandoned_responses == 1
    assert analytics.completion_rate == 50.0
    assert analytics.average_time_to_complete == 900
    assert analytics.last_calculated == NOW
    assert survey.average_completion_time == 15
    assert survey.response_rate == round(4 / 45 * 100, 2)


def test_is_active_respects_window(survey):
    survey.lifecycle.status = "active"
    survey.lifecycle.starts_at = NOW - timedelta(days=1)
    survey.lifecycle.ends_at = NOW + timedelta(days=1)

    assert survey.is_active(now=NOW) is True
    assert survey.is_active(now=NOW + timedelta(days=2)) is False

    survey.lifecycle.status = "paused"
    assert survey.is_active(now=NOW) is False


def test_publish_and_archive(fake_db, survey):
    survey.save(now=NOW)

    survey.publish({"user_id": "admin-1", "full_name": "Carlos Ramírez"}, now=NOW)
    assert survey.lifecycle.status == "active"
    assert survey.lifecycle.published_at == NOW

    survey.archive({"user_id": "admin-1"}, now=NOW)
    assert survey.is_archived is True
    assert survey.lifecycle.status == "archived"


def test_find_active_filters_window_and_archive(fake_db, survey):
    open_survey = survey.model_copy(deep=True)
    open_survey.lifecycle.status = "active"
    open_survey.save(now=NOW)

    windowed = survey.model_copy(deep=True)
    windowed.lifecycle.status = "active"
    windowed.lifecycle.starts_at = NOW - timedelta(days=1)
    windowed.lifecycle.ends_at = NOW + timedelta(days=1)
    windowed.save(now=NOW)

    finished = survey.model_copy(deep=True)
    finished.lifecycle.status = "active"
    finished.lifecycle.ends_at = NOW - timedelta(days=1)
    finished.save(now=NOW)

    draft = survey.model_copy(deep=True)
    draft.save(now=NOW)

    found = Survey.find_active(now=NOW)

    assert {s.id for s in found} == {open_survey.id, windowed.id}
