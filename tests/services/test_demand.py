import pytest

from amod_dispatch.app.protocols import DemandEstimator
from amod_dispatch.services.demand import FixedDemandEstimator, HistoricalDemandEstimator


def test_fixed_rate_times_horizon():
    est = FixedDemandEstimator(rates={1: 0.01}, default_rate=0.002)
    assert isinstance(est, DemandEstimator)
    assert est.predict(1, 300.0) == pytest.approx(3.0)
    assert est.predict(2, 300.0) == pytest.approx(0.6)
    assert est.predict(1, -5.0) == 0.0


def test_queue_hint_adds_queued_bookings():
    est = FixedDemandEstimator(rates={1: 0.01})
    assert est.predict(1, 100.0, use_queue_hint=True, queued=2) == pytest.approx(3.0)
    assert est.predict(1, 100.0, use_queue_hint=False, queued=2) == pytest.approx(1.0)


def test_historical_rate_over_trailing_window():
    est = HistoricalDemandEstimator(window_s=600.0)
    for t in (0.0, 100.0, 700.0, 800.0, 900.0):
        est.observe(5, t)
    # bookings at 700, 800, 900 are within 600 s of the latest
    assert est.predict(5, 600.0) == pytest.approx(3.0)
    assert est.predict(6, 600.0) == 0.0
    assert est.predict(6, 600.0, use_queue_hint=True, queued=1) == pytest.approx(1.0)


def test_historical_window_must_be_positive():
    with pytest.raises(ValueError):
        HistoricalDemandEstimator(window_s=0)


def test_historical_window_ends_at_current_time():
    est = HistoricalDemandEstimator(window_s=600.0)
    for t in range(10):
        est.observe(1, float(t))
    assert est.predict(1, 300.0) == pytest.approx(10 / 600.0 * 300.0)
    est.advance(500.0)
    assert est.predict(1, 300.0) == pytest.approx(10 / 600.0 * 300.0)
    est.advance(605.0)
    # bookings at t < 5 fell out of the window
    assert est.predict(1, 300.0) == pytest.approx(5 / 600.0 * 300.0)
    est.advance(10_000.0)
    assert est.predict(1, 300.0) == 0.0
    # time never runs backwards
    est.advance(0.0)
    assert est.predict(1, 300.0) == 0.0
