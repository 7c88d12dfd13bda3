# flake8: noqa
import math
from datetime import datetime, timedelta

import pytest

from labinterop.qc.statistics import (
    GAUSSIAN_EXPECTATION,
    QCPeriod,
    compute_statistics,
    levey_jennings,
    period_bounds,
)

SERIES = [10, 12, 8, 11, 9]


def test_basic_statistics():
    st = compute_statistics(SERIES)
    assert st.n == 5
    assert st.mean == 10
    # SD muestral (n - 1): sqrt(10 / 4)
    assert st.sd == pytest.approx(math.sqrt(2.5))
    assert st.sd == pytest.approx(1.5811, abs=1e-4)
    assert st.cv == pytest.approx(15.811, abs=1e-3)
    assert st.min == 8 and st.max == 12
    assert st.median == 10
    # sin objetivo, el sesgo es contra la propia media
    assert st.bias == 0
    assert st.sigma is None


def test_within_sd_counts_never_exceed_n():
    st = compute_statistics(SERIES)
    c = st.within_sd
    assert (c.one_sd, c.two_sd, c.three_sd) == (3, 5, 5)
    assert c.one_sd <= c.two_sd <= c.three_sd <= st.n
    assert c.percentages(st.n)["two_sd"] == 100.0


def test_within_sd_against_target():
    st = compute_statistics(SERIES, target_mean=10, target_sd=1)
    c = st.within_sd
    # |v - 10| <= k: 10, 11, 9 a 1 SD; todos a 2 SD
    assert (c.one_sd, c.two_sd, c.three_sd) == (3, 5, 5)
    st = compute_statistics(SERIES, target_mean=10, target_sd=0.5)
    assert st.within_sd.one_sd == 1


def test_bias_and_total_error_against_target():
    st = compute_statistics(SERIES, target_mean=8, target_sd=1, target_cv=40)
    assert st.bias == pytest.approx(25.0)
    assert st.total_error == pytest.approx(25.0 + 1.65 * st.cv)
    assert st.sigma == pytest.approx((40 - 25.0) / st.cv)


def test_empty_series_gives_nan():
    st = compute_statistics([])
    assert st.n == 0
    assert math.isnan(st.mean)
    assert math.isnan(st.sd)
    assert math.isnan(st.cv)
    assert math.isnan(st.median)
    assert st.within_sd.one_sd == 0


def test_single_value_sd_is_nan():
    st = compute_statistics([42])
    assert st.n == 1
    assert st.mean == 42
    assert math.isnan(st.sd)


def test_period_bounds():
    now = datetime(2025, 8, 17, 12, 0)
    start, end = period_bounds(QCPeriod.WEEKLY, now)
    assert end == now
    assert start == now - timedelta(days=7)
    assert period_bounds("quarterly", now)[0] == now - timedelta(days=90)
    assert QCPeriod.DAILY.days == 1
    assert QCPeriod.MONTHLY.days == 30


def test_levey_jennings_limits_and_points():
    chart = levey_jennings([100, 125, 70], 100, 10)
    assert chart.limits["plus_2sd"] == 120
    assert chart.limits["minus_3sd"] == 70
    assert [z for _, z in chart.points] == [0.0, 2.5, -3.0]


def test_gaussian_expectation_constants():
    assert GAUSSIAN_EXPECTATION["two_sd"] == 95.45
