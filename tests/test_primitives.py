import numpy as np
import pytest

from detection_sampling_model import (
    bernoulli,
    binomial,
    logit,
    invlogit,
    trial_rng,
    standard_error,
    ConfigurationError,
)


def test_logit_invlogit_roundtrip():
    p = np.array([1e-6, 0.01, 0.2, 0.5, 0.8, 0.999999])
    assert np.allclose(invlogit(logit(p)), p, rtol=1e-9, atol=0)


def test_invlogit_center_and_extremes():
    assert invlogit(0.0) == pytest.approx(0.5, abs=1e-15)
    vals = invlogit(np.array([-1e4, -50.0, 50.0, 1e4]))
    assert np.all((vals >= 0.0) & (vals <= 1.0))
    assert vals[0] < 1e-12 and vals[-1] > 1 - 1e-12


def test_logit_is_log_odds():
    assert logit(0.5) == pytest.approx(0.0, abs=1e-15)
    assert logit(0.75) == pytest.approx(np.log(3.0), abs=1e-12)


def test_bernoulli_degenerate_probabilities():
    rng = np.random.default_rng(1)
    assert np.all(bernoulli(rng, np.zeros(100)) == 0)
    assert np.all(bernoulli(rng, np.ones(100)) == 1)


def test_bernoulli_mean_close_to_prob():
    rng = np.random.default_rng(2)
    draws = bernoulli(rng, np.full(20_000, 0.3))
    assert set(np.unique(draws)) <= {0, 1}
    assert draws.mean() == pytest.approx(0.3, abs=4 * standard_error(0.3, 20_000))


def test_binomial_range():
    rng = np.random.default_rng(3)
    draws = binomial(rng, 7, np.full(1000, 0.4))
    assert draws.min() >= 0 and draws.max() <= 7


@pytest.mark.parametrize("bad", [-0.1, 1.5, np.nan])
def test_primitives_reject_out_of_range(bad):
    rng = np.random.default_rng(0)
    with pytest.raises(ConfigurationError):
        bernoulli(rng, bad)
    with pytest.raises(ConfigurationError):
        binomial(rng, 7, np.array([0.2, bad]))


def test_trial_rng_is_deterministic_and_distinct():
    a = trial_rng(42, 0).random(5)
    b = trial_rng(42, 0).random(5)
    c = trial_rng(42, 1).random(5)
    d = trial_rng(42, 0, stream=(3,)).random(5)
    assert np.array_equal(a, b)
    assert not np.array_equal(a, c)
    assert not np.array_equal(a, d)


def test_standard_error():
    assert standard_error(0.5, 100) == pytest.approx(0.05)
    assert standard_error(0.0, 100) == 0.0


def test_invlogit_keeps_small_probabilities():
    # exp(-30) and exp(-700) are representable; both must survive with full precision.
    assert invlogit(-30.0) == pytest.approx(np.exp(-30.0) / (1 + np.exp(-30.0)), rel=1e-12)
    assert 0.0 < invlogit(-700.0) < 1e-300
    assert invlogit(30.0) == pytest.approx(1.0 / (1 + np.exp(-30.0)), rel=1e-15)
