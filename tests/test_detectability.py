import numpy as np
import pytest

from detection_sampling_model import (
    DetectabilityProcess,
    DETECTABILITY_PRESETS,
    detection_probabilities,
    drift_path,
    next_drift,
    logit,
    ConfigurationError,
)


def test_constant_mode_is_flat():
    rng = np.random.default_rng(0)
    p_vec = detection_probabilities(rng, 56, 0.1, DetectabilityProcess())
    assert p_vec.shape == (56,)
    assert np.all(p_vec == 0.1)


def test_drift_path_recursion():
    eps = np.array([1.0, -2.0, 0.5])
    d = drift_path(eps, 0.5)
    # d1 = 0, d2 = 1, d3 = 0.5 - 2, d4 = -0.75 + 0.5
    assert np.allclose(d, [0.0, 1.0, -1.5, -0.25])
    assert next_drift(-1.5, 0.5, 0.5) == pytest.approx(-0.25)


def test_drift_path_phi_zero_returns_innovations():
    eps = np.random.default_rng(5).normal(0.0, 3.0, size=200)
    d = drift_path(eps, 0.0)
    assert d[0] == 0.0
    assert np.array_equal(d[1:], eps)


def test_sigma_zero_gives_constant_p():
    rng = np.random.default_rng(7)
    proc = DetectabilityProcess(mode="time_varying", phi=0.9, sigma=0.0)
    p_vec = detection_probabilities(rng, 70, 0.15, proc)
    assert np.allclose(p_vec, 0.15, rtol=0, atol=1e-12)


def test_time_varying_starts_at_base_and_stays_in_unit_interval():
    rng = np.random.default_rng(11)
    proc = DetectabilityProcess.preset("high_volatility")
    p_vec = detection_probabilities(rng, 365, 0.1, proc)
    assert p_vec[0] == pytest.approx(0.1, abs=1e-12)
    assert np.all((p_vec >= 0.0) & (p_vec <= 1.0))
    assert np.std(p_vec) > 0.05


def test_phi_zero_has_no_lag_one_autocorrelation():
    rng = np.random.default_rng(13)
    proc = DetectabilityProcess(mode="time_varying", phi=0.0, sigma=0.3)
    eta = logit(detection_probabilities(rng, 20_001, 0.2, proc)) - logit(0.2)
    dev = eta[1:]
    r = np.corrcoef(dev[:-1], dev[1:])[0, 1]
    assert abs(r) < 0.03
    assert np.std(dev) == pytest.approx(0.3, rel=0.05)


def test_positive_phi_is_autocorrelated():
    rng = np.random.default_rng(17)
    proc = DetectabilityProcess(mode="time_varying", phi=0.5, sigma=0.3)
    eta = logit(detection_probabilities(rng, 20_001, 0.2, proc)) - logit(0.2)
    r = np.corrcoef(eta[1:-1], eta[2:])[0, 1]
    assert r == pytest.approx(0.5, abs=0.05)


def test_single_day_time_varying():
    rng = np.random.default_rng(0)
    proc = DetectabilityProcess.preset("low_volatility")
    p_vec = detection_probabilities(rng, 1, 0.3, proc)
    assert p_vec.shape == (1,)
    assert p_vec[0] == pytest.approx(0.3)


def test_presets():
    hv = DetectabilityProcess.preset("high_volatility")
    lv = DetectabilityProcess.preset("low-volatility")
    assert (hv.mode, hv.phi, hv.sigma) == ("time_varying", 0.2, 3.0)
    assert (lv.phi, lv.sigma) == (DETECTABILITY_PRESETS["low_volatility"]["phi"],
                                  DETECTABILITY_PRESETS["low_volatility"]["sigma"])
    with pytest.raises(ConfigurationError):
        DetectabilityProcess.preset("wild")
