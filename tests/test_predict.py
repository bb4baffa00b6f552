import dataclasses
import math

import numpy as np
import pytest

from waitlist_risk import (
    FittedModel,
    MissingValueError,
    UnknownCategoryLevel,
    format_percentage,
    predict_one,
    predict_percentage,
)

RECORD = {"age": 50, "sex": "m", "abo": "O", "futime": 365}


@pytest.fixture
def manual_model():
    return FittedModel(
        predictors=("age", "sex", "abo"),
        terms=("intercept", "age", "sex[m]", "abo[B]", "abo[O]"),
        estimates=(-3.0, 0.05, 0.4, -0.2, 0.3),
        levels=(("sex", ("f", "m")), ("abo", ("A", "B", "O"))),
        fitted=np.array([0.5]),
        n_obs=1,
    )


def test_logistic_link_by_hand(manual_model):
    eta = -3.0 + 0.05 * 50 + 0.4 + 0.3
    expected = 1 / (1 + math.exp(-eta))

    assert predict_one(manual_model, RECORD) == pytest.approx(expected)


def test_reference_levels_contribute_nothing(manual_model):
    record = {"age": 20, "sex": "f", "abo": "A"}

    assert predict_one(manual_model, record) == pytest.approx(1 / (1 + math.exp(-(-3.0 + 1.0))))


def test_non_reference_level_without_term_raises(manual_model):
    incomplete = dataclasses.replace(
        manual_model,
        terms=("intercept", "age", "sex[m]", "abo[O]"),
        estimates=(-3.0, 0.05, 0.4, 0.3),
    )

    with pytest.raises(KeyError, match=r"abo\[B\]"):
        predict_one(incomplete, {"age": 20, "sex": "f", "abo": "B"})
    assert predict_one(incomplete, {"age": 20, "sex": "f", "abo": "A"}) == pytest.approx(
        1 / (1 + math.exp(-(-3.0 + 1.0)))
    )


def test_prediction_in_unit_interval_and_deterministic(model):
    first = predict_one(model, RECORD)

    assert 0.0 <= first <= 1.0
    assert all(predict_one(model, dict(RECORD)) == first for _ in range(5))


def test_matches_frame_prediction(model, dataset):
    frame = dataset.frame.head(10)
    records = frame.to_dict(orient="records")
    singles = [predict_one(model, record) for record in records]

    np.testing.assert_allclose(singles, model.predict(frame), atol=1e-12)
    assert model.predict(records[0]) == pytest.approx(singles[0])


def test_percentage_rendering(model):
    probability = predict_one(model, RECORD)

    assert predict_percentage(model, RECORD) == round(probability * 100, 2)
    assert format_percentage(0.5) == "50.00%"
    assert format_percentage(0.1234) == "12.34%"


def test_unknown_blood_type_is_rejected(model):
    with pytest.raises(UnknownCategoryLevel) as excinfo:
        predict_one(model, {**RECORD, "abo": "Z"})

    assert excinfo.value.attribute == "abo"
    assert excinfo.value.value == "Z"
    assert "abo" in str(excinfo.value)


def test_values_are_normalised_before_lookup(model):
    assert predict_one(model, {**RECORD, "sex": " M ", "abo": "o"}) == predict_one(model, RECORD)


@pytest.mark.parametrize("bad", [{"age": None}, {"age": float("nan")}, {"sex": ""}])
def test_missing_values_are_rejected(model, bad):
    with pytest.raises(MissingValueError):
        predict_one(model, {**RECORD, **bad})


def test_absent_attribute_is_rejected(model):
    record = {key: value for key, value in RECORD.items() if key != "futime"}
    with pytest.raises(MissingValueError, match="futime"):
        predict_one(model, record)


def test_non_numeric_value_is_rejected(model):
    with pytest.raises(ValueError, match="numeric"):
        predict_one(model, {**RECORD, "age": "fifty"})


def test_record_is_not_mutated(model):
    record = dict(RECORD)
    predict_one(model, record)

    assert record == RECORD
