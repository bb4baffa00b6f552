import pytest

from waitlist_risk import build_dataset, fit_logistic, simulate_waitlist


@pytest.fixture
def raw_cohort():
    return simulate_waitlist(200, seed=7)


@pytest.fixture
def dataset(raw_cohort):
    return build_dataset(raw_cohort)


@pytest.fixture
def model(dataset):
    return fit_logistic(dataset)
