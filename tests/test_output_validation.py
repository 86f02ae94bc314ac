import pytest

from analysis_service.domain.exceptions import OutputValidationError
from analysis_service.domain.models import AnalysisResult, validate_analysis_output

from conftest import make_product


def _expect_code(payload, code):
    with pytest.raises(OutputValidationError) as exc_info:
        validate_analysis_output(payload)
    assert exc_info.value.code == code
    return exc_info.value


def test_valid_payload_is_returned_unchanged(analysis_payload):
    assert validate_analysis_output(analysis_payload) is analysis_payload


def test_overall_score_out_of_range(analysis_payload):
    analysis_payload["analysis"]["overallScore"] = 150
    error = _expect_code(analysis_payload, "range")
    assert error.field == "overallScore"


@pytest.mark.parametrize("score", [72.5, "72", True, None])
def test_overall_score_must_be_integer(analysis_payload, score):
    analysis_payload["analysis"]["overallScore"] = score
    _expect_code(analysis_payload, "type")


def test_metrics_bounds(analysis_payload):
    analysis_payload["analysis"]["metrics"]["barrier"] = 0
    _expect_code(analysis_payload, "range")


def test_primary_state_enum(analysis_payload):
    analysis_payload["analysis"]["primaryState"] = "Great"
    _expect_code(analysis_payload, "enum")


def test_summary_length(analysis_payload):
    analysis_payload["analysis"]["overallSummary"] = "Too short."
    _expect_code(analysis_payload, "length")


def test_blueprint_habit_must_come_from_reference_list(analysis_payload):
    analysis_payload["analysis"]["blueprint"]["habit"]["title"] = "Meditate Daily"
    _expect_code(analysis_payload, "enum")


def test_missing_blueprint_section(analysis_payload):
    del analysis_payload["analysis"]["blueprint"]["approach"]
    _expect_code(analysis_payload, "missing_field")


def test_accepts_case_insensitive_categories(analysis_payload):
    analysis_payload["routine"]["products"] = [
        make_product("Foaming CLEANSER", 1),
        make_product("toner", 2),
        make_product("Gel Moisturizer", 3),
        make_product("Sunscreen SPF 50", 4),
    ]
    validate_analysis_output(analysis_payload)


def test_two_cleansers_and_no_sunscreen(analysis_payload):
    analysis_payload["routine"]["products"] = [
        make_product("Cleanser", 1),
        make_product("Cleanser", 2),
        make_product("Serum", 3),
        make_product("Moisturizer", 4),
    ]
    error = _expect_code(analysis_payload, "missing_category")
    assert "sunscreen" in error.message


def test_two_treatments(analysis_payload):
    analysis_payload["routine"]["products"] = [
        make_product("Cleanser", 1),
        make_product("Serum", 2),
        make_product("Hydrating Toner Moisturizer", 3),
        make_product("Sunscreen", 4),
    ]
    _expect_code(analysis_payload, "treatment_count")


def test_routine_needs_exactly_four_products(analysis_payload):
    analysis_payload["routine"]["products"] = analysis_payload["routine"]["products"][:3]
    _expect_code(analysis_payload, "count")


@pytest.mark.parametrize(
    "field,value,code",
    [
        ("product_id", 0, "range"),
        ("product_id", "12", "type"),
        ("brand", "", "length"),
        ("price_usd", -1, "range"),
        ("price_usd", "free", "type"),
        ("star_rating", 5.5, "range"),
        ("reasoning", "Too short", "length"),
        ("reasoning", "x" * 101, "length"),
    ],
)
def test_product_field_rules(analysis_payload, field, value, code):
    analysis_payload["routine"]["products"][1][field] = value
    _expect_code(analysis_payload, code)


def test_non_object_payload():
    _expect_code(["not", "an", "object"], "type")


def test_integer_prices_and_ratings_are_numbers(analysis_payload):
    analysis_payload["routine"]["products"][0].update(price_usd=18, star_rating=5)
    validate_analysis_output(analysis_payload)


def test_missing_category_error_names_the_routine(analysis_payload):
    analysis_payload["routine"]["products"][3] = make_product("Essence", 4)
    error = _expect_code(analysis_payload, "missing_category")
    assert error.field == "routine"
    assert error.message.startswith("routine: ")


def test_result_models_expose_typed_fields(analysis_payload):
    result = AnalysisResult.model_validate(analysis_payload)
    assert result.analysis.metrics.hydration == 58
    assert result.analysis.blueprint.ingredient.title == "Ceramides"
    assert [p.product_type for p in result.routine.products] == ["Cleanser", "Serum", "Moisturizer", "Sunscreen"]
