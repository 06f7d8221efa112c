from unittest.mock import patch

import pytest

from source_verifier import SourceVerdictPolicy, verify_data_source


@pytest.mark.parametrize("verdict,expected", [
    ("CORRECT", "products"),
    ("Correct.", "products"),
    ("products", "products"),
    ("companies", "companies"),
    ("The right source is testimonials.", "testimonials"),
    ("no idea", "products"),
    ("", "products"),
])
def test_verdict_policy(verdict, expected):
    assert SourceVerdictPolicy("products")(verdict, "company website with products page") == expected


def test_verdict_policy_respects_available_list():
    policy = SourceVerdictPolicy("movies", ["movies", "actors"])
    assert policy("companies", "film stars") == "movies"
    assert policy("actors", "film stars") == "actors"


@patch("source_verifier.complete", return_value="companies")
def test_verify_returns_correction(mock_complete):
    assert verify_data_source("products", "our company website with a products page") == "companies"
    prompt = mock_complete.call_args.args[1]
    assert 'Detected data source: "products"' in prompt


@patch("source_verifier.complete", side_effect=RuntimeError("backend down"))
def test_verify_keeps_detected_on_failure(mock_complete):
    assert verify_data_source("movies", "show me films") == "movies"
