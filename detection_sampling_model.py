#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Monte Carlo Comparison of High-Frequency vs. Weekly Sampling for Detecting a Rare,
Intermittently Present Target (≥1 detection over a monitoring horizon)

--------------------------------------------------------------------
WHAT THIS MODEL DOES
--------------------------------------------------------------------
A) Generative process (one Monte Carlo trial)
   1) Latent occupancy Z[t] ~ Bernoulli(psi) for every day t = 1..T.
   2) Detection probability p_vec[t], either constant (= p) or time-varying:
      a mean-reverting AR(1) drift on the logit scale,
          d[1] = 0,  d[t] = phi * d[t-1] + eps_t,  eps_t ~ Normal(0, sigma),
          p_vec[t] = invlogit(logit(p) + d[t]).
   3) Two sampling regimes observe the *same* realized Z and p_vec (paired design):
      - high-frequency: one sample per day, Y_hf[t] ~ Bernoulli(Z[t] * p_vec[t]);
      - conventional: one collection event every `interval` (7) days, under a
        chosen batching policy:
          * subsample   : the 7 subsamples of a collection share the presence state
                          at the collection day, Y[c] ~ Binomial(7, Z[c] * p_vec[c]);
          * independent : each day of the week is its own sample against that day's
                          presence, with detectability held at the collection day's
                          value, Y[t] ~ Bernoulli(Z[t] * p_vec[c(t)]);
          * pooled      : presence folded into the success probability,
                          Y[c] ~ Binomial(7, psi * p_vec[c]).

B) Monte Carlo aggregation
   - Each trial is reduced to "was there at least one detection?" per regime; the
     across-trial means are the detection rates. Standard errors are
     sqrt(r * (1 - r) / n_sims), so `n_sims` is the precision knob.

C) Reproducibility & parallelism
   - Trial i draws from its own Generator seeded by SeedSequence(seed, spawn_key=(..., i)),
     so results are bit-identical regardless of how trials are split across workers.
   - `--n_jobs` spreads trial batches over a process pool.

D) Experiment sweeps & outputs
   - `--sweep` runs a grid of (num_weeks, psi, p, batching) and writes long-format rows
     keyed by (sample_method, num_weeks, psi, p) to CSV/JSON, with an optional faceted plot.

--------------------------------------------------------------------
ASSUMPTIONS & SCOPE
--------------------------------------------------------------------
- The horizon T must be an exact multiple of the sampling interval; anything else is a
  configuration error raised before sampling.
- The model only simulates the forward process and the binary "any detection" outcome.
  It does not fit occupancy models or estimate psi/p from the simulated data.
"""

from __future__ import annotations

import argparse
import csv
import itertools
import json
import math
import re
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt


# ----------------------------
# CONFIGURABLE CONSTANTS
# ----------------------------

SAMPLING_INTERVAL_DAYS: int = 7     # One conventional collection event per week.
DEFAULT_N_SIMS: int = 10_000        # Monte Carlo trials per configuration.
DEFAULT_N_WEEKS: int = 8
DEFAULT_PSI: float = 0.10
DEFAULT_P_DETECT: float = 0.10

BATCHING_MODES: Tuple[str, ...] = ("subsample", "independent", "pooled")
DETECTABILITY_MODES: Tuple[str, ...] = ("constant", "time_varying")
SAMPLE_METHODS: Tuple[str, ...] = ("conventional", "high_frequency")

# Calibration regimes for the time-varying detectability process.
DETECTABILITY_PRESETS: Dict[str, Dict[str, float]] = {
    "high_volatility": {"phi": 0.2, "sigma": 3.0},
    "low_volatility": {"phi": 0.5, "sigma": 0.3},
}

BATCHING_SYNONYMS: Dict[str, str] = {
    "subsamples": "subsample",
    "batch": "subsample",
    "batched": "subsample",
    "shared": "subsample",
    "independent_sample": "independent",
    "independent_samples": "independent",
    "individual": "independent",
    "folded": "pooled",
    "pool": "pooled",
}

DETECTABILITY_SYNONYMS: Dict[str, str] = {
    "fixed": "constant",
    "static": "constant",
    "time-varying": "time_varying",
    "timevarying": "time_varying",
    "varying": "time_varying",
    "ar1": "time_varying",
}

SAMPLE_METHOD_LABELS: Dict[str, str] = {
    "conventional": "Conventional (weekly)",
    "high_frequency": "High-frequency (daily)",
}


class ConfigurationError(ValueError):
    """Invalid run configuration. Raised before any random draw is made."""


# ----------------------------
# UTILS
# ----------------------------

def parse_grid(spec: Optional[str], cast=float) -> List:
    """Parse a grid like "0.05,0.10;0.15" or an integer range like "1-8".

    Ranges are inclusive and only accepted when `cast` is int.
    """
    if not spec:
        return []
    out = []
    for item in re.split(r"[;,]\s*", spec.strip()):
        if not item:
            continue
        m = re.fullmatch(r"\s*(\d+)\s*-\s*(\d+)\s*", item)
        if m and cast is int:
            lo, hi = int(m.group(1)), int(m.group(2))
            if hi < lo:
                raise ValueError(f"Empty range '{item}'.")
            out.extend(range(lo, hi + 1))
            continue
        try:
            out.append(cast(item.strip()))
        except ValueError:
            raise ValueError(f"Could not parse grid value '{item}' as {cast.__name__}.")
    return out


def normalize_batching(s: str) -> str:
    """Normalize a batching policy name to one of BATCHING_MODES."""
    b = (s or "").strip().lower().replace("-", "_").replace(" ", "_")
    b = BATCHING_SYNONYMS.get(b, b)
    if b not in BATCHING_MODES:
        raise ConfigurationError(f"Unknown batching policy '{s}'. Allowed: {BATCHING_MODES}")
    return b


def normalize_detectability_mode(s: str) -> str:
    d = (s or "").strip().lower()
    d = DETECTABILITY_SYNONYMS.get(d, d)
    if d not in DETECTABILITY_MODES:
        raise ConfigurationError(f"Unknown detectability mode '{s}'. Allowed: {DETECTABILITY_MODES}")
    return d


def _check_probability(prob) -> np.ndarray:
    arr = np.asarray(prob, dtype=float)
    # NaN fails both comparisons
    if not np.all((arr >= 0.0) & (arr <= 1.0)):
        raise ConfigurationError(f"Probabilities must lie in [0, 1], got {prob!r}.")
    return arr


def standard_error(rate: float, n: int) -> float:
    """Binomial Monte Carlo standard error of an estimated proportion."""
    if n <= 0:
        return float("nan")
    return math.sqrt(max(rate * (1.0 - rate), 0.0) / n)


# ----------------------------
# DRAW PRIMITIVES
# ----------------------------

def bernoulli(rng: np.random.Generator, prob) -> np.ndarray:
    """Bernoulli draw(s) with P(1) = prob. Shape follows `prob`."""
    return rng.binomial(1, _check_probability(prob))


def binomial(rng: np.random.Generator, n: int, prob) -> np.ndarray:
    """Number of successes in `n` independent Bernoulli(prob) trials."""
    return rng.binomial(int(n), _check_probability(prob))


def logit(prob):
    """Log-odds log(p / (1 - p)). Infinite at p in {0, 1}; callers guard the boundary."""
    p = np.asarray(prob, dtype=float)
    return np.log(p) - np.log1p(-p)


def invlogit(eta):
    """Inverse logit 1 / (1 + exp(-eta)).

    Evaluated as e / (1 + e) with e = exp(-|eta|) on the negative side, so it never
    overflows and keeps full relative precision for small probabilities. The result
    is in (0, 1) except where float64 saturates: exactly 0.0 below eta ~ -745 and
    exactly 1.0 above eta ~ 37. Downstream draws accept the closed interval.
    """
    eta = np.asarray(eta, dtype=float)
    e = np.exp(-np.abs(eta))
    return np.where(eta >= 0.0, 1.0 / (1.0 + e), e / (1.0 + e))


def trial_rng(entropy: int, trial_index: int, stream: Tuple[int, ...] = ()) -> np.random.Generator:
    """Independent Generator for one trial, keyed by run entropy, stream and trial index."""
    seq = np.random.SeedSequence(entropy, spawn_key=tuple(stream) + (int(trial_index),))
    return np.random.default_rng(seq)


# ----------------------------
# DATA CLASSES
# ----------------------------

@dataclass
class DetectabilityProcess:
    """Constant detection probability, or an AR(1) drift on the logit scale.

    `phi` is the drift persistence (mean-reverting when |phi| < 1) and `sigma` the
    innovation standard deviation. Both are ignored in constant mode.
    """
    mode: str = "constant"
    phi: float = 0.0
    sigma: float = 0.0

    @classmethod
    def preset(cls, name: str) -> "DetectabilityProcess":
        key = (name or "").strip().lower().replace("-", "_")
        if key not in DETECTABILITY_PRESETS:
            raise ConfigurationError(
                f"Unknown detectability preset '{name}'. Allowed: {tuple(DETECTABILITY_PRESETS)}")
        params = DETECTABILITY_PRESETS[key]
        return cls(mode="time_varying", phi=params["phi"], sigma=params["sigma"])

    def describe(self) -> str:
        if self.mode == "constant":
            return "constant"
        return f"time_varying(phi={self.phi:g}, sigma={self.sigma:g})"


@dataclass
class ModelInputs:
    """Configuration for one (T, psi, p, batching, detectability) combination.

    Fields map directly to CLI flags. `horizon_days` must be a multiple of `interval`.
    `psi` may be 0 (target never present) but must stay below 1.
    """
    horizon_days: int = DEFAULT_N_WEEKS * SAMPLING_INTERVAL_DAYS
    psi: float = DEFAULT_PSI
    p_detect: float = DEFAULT_P_DETECT
    batching: str = "subsample"
    detectability: DetectabilityProcess = field(default_factory=DetectabilityProcess)
    n_sims: int = DEFAULT_N_SIMS
    seed: Optional[int] = None
    interval: int = SAMPLING_INTERVAL_DAYS

    @property
    def n_weeks(self) -> int:
        """Number of collection events (T / interval)."""
        return self.horizon_days // self.interval


@dataclass
class TrialOutcome:
    """One realization of (Z, p_vec, Y_conv, Y_hf).

    `conventional` holds one count per collection event (subsample, pooled) or one
    indicator per day (independent); `high_frequency` always holds one per day.
    """
    occupancy: np.ndarray           # Z, (T,)
    p_vec: np.ndarray               # detection probabilities, (T,)
    conventional: np.ndarray
    high_frequency: np.ndarray      # (T,)

    @property
    def horizon_days(self) -> int:
        return int(self.occupancy.shape[0])

    @property
    def conventional_detected(self) -> bool:
        return bool(np.any(self.conventional > 0))

    @property
    def high_frequency_detected(self) -> bool:
        return bool(np.any(self.high_frequency > 0))

    @property
    def conventional_rate(self) -> float:
        """Detections per day over the horizon."""
        return float(np.sum(self.conventional)) / self.horizon_days

    @property
    def high_frequency_rate(self) -> float:
        return float(np.sum(self.high_frequency)) / self.horizon_days


@dataclass
class AggregateResult:
    """Monte Carlo estimates for one configuration.

    The detection rates are the fractions of trials with ≥1 detection in each regime.
    """
    conventional_detection_rate: float
    high_frequency_detection_rate: float
    conventional_std_error: float
    high_frequency_std_error: float
    conventional_mean_daily_rate: float
    high_frequency_mean_daily_rate: float
    n_sims: int
    entropy: int
    inputs: ModelInputs

    @property
    def difference(self) -> float:
        """High-frequency minus conventional detection rate."""
        return self.high_frequency_detection_rate - self.conventional_detection_rate

    def as_dict(self) -> Dict[str, float]:
        return {
            "conventional_detection_rate": self.conventional_detection_rate,
            "high_frequency_detection_rate": self.high_frequency_detection_rate,
        }


# ----------------------------
# VALIDATION
# ----------------------------

def _is_int(x) -> bool:
    return isinstance(x, (int, np.integer)) and not isinstance(x, bool)


def validate_inputs(inputs: ModelInputs) -> ModelInputs:
    """Check a configuration and return a copy with normalized mode names.

    Raises ConfigurationError naming the offending values. Runs once per configuration,
    never inside the trial loop.
    """
    s = inputs.interval
    T = inputs.horizon_days
    if not _is_int(s) or s < 1:
        raise ConfigurationError(f"interval must be a positive integer, got {s!r}.")
    if not _is_int(T) or T < 1:
        raise ConfigurationError(f"horizon_days must be a positive integer, got {T!r}.")
    if T % s != 0:
        raise ConfigurationError(
            f"horizon_days={T} is not a multiple of the sampling interval {s} "
            f"({T / s:g} collection events); refusing to round.")
    if not (0.0 <= float(inputs.psi) < 1.0):
        raise ConfigurationError(f"psi must be in [0, 1), got {inputs.psi!r}.")
    if not (0.0 < float(inputs.p_detect) < 1.0):
        raise ConfigurationError(f"p_detect must be in (0, 1), got {inputs.p_detect!r}.")
    if not _is_int(inputs.n_sims) or inputs.n_sims < 1:
        raise ConfigurationError(f"n_sims must be a positive integer, got {inputs.n_sims!r}.")
    if inputs.seed is not None and (not _is_int(inputs.seed) or inputs.seed < 0):
        raise ConfigurationError(f"seed must be a non-negative integer or None, got {inputs.seed!r}.")

    batching = normalize_batching(inputs.batching)
    proc = inputs.detectability
    mode = normalize_detectability_mode(proc.mode)
    if mode == "time_varying":
        if not math.isfinite(float(proc.phi)):
            raise ConfigurationError(f"phi must be finite, got {proc.phi!r}.")
        if not (math.isfinite(float(proc.sigma)) and float(proc.sigma) >= 0.0):
            raise ConfigurationError(f"sigma must be finite and ≥ 0, got {proc.sigma!r}.")
    proc = replace(proc, mode=mode, phi=float(proc.phi), sigma=float(proc.sigma))

    return replace(inputs, batching=batching, detectability=proc,
                   psi=float(inputs.psi), p_detect=float(inputs.p_detect))


# ----------------------------
# DETECTION-PROBABILITY PROCESS
# ----------------------------

def next_drift(prev: float, innovation: float, phi: float) -> float:
    """One AR(1) step: d[t] = phi * d[t-1] + eps[t]."""
    return phi * prev + innovation


def drift_path(innovations: np.ndarray, phi: float) -> np.ndarray:
    """Fold innovations eps[2..T] into the drift path d[1..T], starting at d[1] = 0."""
    innovations = np.asarray(innovations, dtype=float)
    steps = itertools.accumulate(innovations, lambda d, e: next_drift(d, e, phi), initial=0.0)
    return np.fromiter(steps, dtype=float, count=innovations.shape[0] + 1)


def detection_probabilities(rng: np.random.Generator,
                            horizon_days: int,
                            p_detect: float,
                            process: DetectabilityProcess) -> np.ndarray:
    """Per-day detection probabilities p_vec (length T) for one trial."""
    if process.mode == "constant":
        return np.full(horizon_days, float(p_detect))
    eta0 = logit(p_detect)
    eps = rng.normal(0.0, process.sigma, size=horizon_days - 1)
    return invlogit(eta0 + drift_path(eps, process.phi))


# ----------------------------
# TRIAL GENERATOR
# ----------------------------

def collection_steps(horizon_days: int, interval: int) -> np.ndarray:
    """0-based indices of the collection days: 0, s, 2s, ..."""
    return np.arange(0, horizon_days, interval)


def conventional_detections(rng: np.random.Generator,
                            occupancy: np.ndarray,
                            p_vec: np.ndarray,
                            psi: float,
                            interval: int,
                            batching: str) -> np.ndarray:
    """Detections for the conventional regime under the given batching policy."""
    steps = collection_steps(occupancy.shape[0], interval)
    if batching == "subsample":
        return binomial(rng, interval, occupancy[steps] * p_vec[steps])
    if batching == "pooled":
        return binomial(rng, interval, psi * p_vec[steps])
    # independent: detectability fixed for the week, presence varies by day
    return bernoulli(rng, occupancy * np.repeat(p_vec[steps], interval))


def simulate_trial(inputs: ModelInputs, rng: np.random.Generator) -> TrialOutcome:
    """Draw one paired trial. Expects inputs that passed `validate_inputs`.

    Draw order is fixed (Z, p_vec, high-frequency, conventional) so a given
    Generator state always yields the same trial.
    """
    T = inputs.horizon_days
    z = bernoulli(rng, np.full(T, inputs.psi))
    p_vec = detection_probabilities(rng, T, inputs.p_detect, inputs.detectability)
    y_hf = bernoulli(rng, z * p_vec)
    y_conv = conventional_detections(rng, z, p_vec, inputs.psi, inputs.interval, inputs.batching)
    return TrialOutcome(occupancy=z, p_vec=p_vec, conventional=y_conv, high_frequency=y_hf)


# ----------------------------
# MONTE CARLO AGGREGATION
# ----------------------------

def _run_trial_batch(inputs: ModelInputs,
                     entropy: int,
                     stream: Tuple[int, ...],
                     start: int,
                     stop: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Run trials [start, stop) and keep only their summaries."""
    n = stop - start
    conv_any = np.zeros(n, dtype=bool)
    hf_any = np.zeros(n, dtype=bool)
    conv_rate = np.zeros(n, dtype=float)
    hf_rate = np.zeros(n, dtype=float)
    for j, i in enumerate(range(start, stop)):
        trial = simulate_trial(inputs, trial_rng(entropy, i, stream))
        conv_any[j] = trial.conventional_detected
        hf_any[j] = trial.high_frequency_detected
        conv_rate[j] = trial.conventional_rate
        hf_rate[j] = trial.high_frequency_rate
    return conv_any, hf_any, conv_rate, hf_rate


def run_configuration(inputs: ModelInputs,
                      n_jobs: int = 1,
                      stream: Tuple[int, ...] = ()) -> AggregateResult:
    """Monte Carlo detection rates for both sampling regimes.

    Every trial redraws Z and p_vec from its own Generator, so the result depends only
    on (inputs, seed, stream) and not on `n_jobs`. With `seed=None` fresh entropy is
    drawn once and reported on the result.
    """
    inputs = validate_inputs(inputs)
    entropy = inputs.seed if inputs.seed is not None else np.random.SeedSequence().entropy
    n = inputs.n_sims
    stream = tuple(int(k) for k in stream)

    n_batches = max(1, min(int(n_jobs), n))
    if n_batches > 1:
        bounds = np.linspace(0, n, n_batches + 1).astype(int)
        with ProcessPoolExecutor(max_workers=n_batches) as pool:
            futures = [pool.submit(_run_trial_batch, inputs, entropy, stream, int(a), int(b))
                       for a, b in zip(bounds[:-1], bounds[1:])]
            parts = [f.result() for f in futures]
    else:
        parts = [_run_trial_batch(inputs, entropy, stream, 0, n)]

    conv_any, hf_any, conv_rate, hf_rate = (np.concatenate(cols) for cols in zip(*parts))
    r_conv = float(np.mean(conv_any))
    r_hf = float(np.mean(hf_any))
    return AggregateResult(
        conventional_detection_rate=r_conv,
        high_frequency_detection_rate=r_hf,
        conventional_std_error=standard_error(r_conv, n),
        high_frequency_std_error=standard_error(r_hf, n),
        conventional_mean_daily_rate=float(np.mean(conv_rate)),
        high_frequency_mean_daily_rate=float(np.mean(hf_rate)),
        n_sims=n,
        entropy=int(entropy),
        inputs=inputs,
    )


def aggregate(num_sims: int,
              horizon_days: int,
              psi: float,
              p_detect: float,
              interval: int = SAMPLING_INTERVAL_DAYS,
              batching: str = "subsample",
              detectability: Optional[DetectabilityProcess] = None,
              seed: Optional[int] = None) -> Tuple[float, float]:
    """Return (conventional, high-frequency) detection rates for one configuration."""
    inputs = ModelInputs(
        horizon_days=horizon_days,
        psi=psi,
        p_detect=p_detect,
        batching=batching,
        detectability=detectability or DetectabilityProcess(),
        n_sims=num_sims,
        seed=seed,
        interval=interval,
    )
    res = run_configuration(inputs)
    return res.conventional_detection_rate, res.high_frequency_detection_rate


def analytic_detection_probability(horizon_days: int,
                                   psi: float,
                                   p_detect: float,
                                   interval: int = SAMPLING_INTERVAL_DAYS,
                                   batching: str = "subsample") -> Tuple[float, float]:
    """Closed-form (conventional, high-frequency) P(≥1 detection) for constant detectability.

    High-frequency, independent and pooled: 1 - (1 - psi*p)^T.
    Subsample: each collection detects with psi * (1 - (1 - p)^s), over T/s collections.
    """
    batching = normalize_batching(batching)
    p_hf = 1.0 - (1.0 - psi * p_detect) ** horizon_days
    if batching == "subsample":
        per_event = psi * (1.0 - (1.0 - p_detect) ** interval)
        p_conv = 1.0 - (1.0 - per_event) ** (horizon_days // interval)
    else:
        p_conv = p_hf
    return p_conv, p_hf


# ----------------------------
# EXPERIMENT DRIVER
# ----------------------------

def result_rows(result: AggregateResult) -> List[Dict]:
    """Long-format rows (one per sampling method) for one configuration."""
    inp = result.inputs
    rows = []
    for method, rate, se in (
            ("conventional", result.conventional_detection_rate, result.conventional_std_error),
            ("high_frequency", result.high_frequency_detection_rate, result.high_frequency_std_error)):
        rows.append({
            "sample_method": method,
            "batching": inp.batching,
            "detectability": inp.detectability.describe(),
            "num_weeks": inp.n_weeks,
            "psi": inp.psi,
            "p": inp.p_detect,
            "detection_rate": rate,
            "std_error": se,
            "n_sims": result.n_sims,
            "entropy": result.entropy,
        })
    return rows


def run_sweep(weeks_grid: Sequence[int],
              psi_grid: Sequence[float],
              p_grid: Sequence[float],
              batching_modes: Sequence[str] = ("subsample",),
              detectability: Optional[DetectabilityProcess] = None,
              n_sims: int = DEFAULT_N_SIMS,
              seed: Optional[int] = None,
              interval: int = SAMPLING_INTERVAL_DAYS,
              n_jobs: int = 1,
              verbose: bool = False) -> List[Dict]:
    """Run every (batching, num_weeks, psi, p) combination and return long-format rows.

    All grid points are validated before any simulation starts; an empty grid or an
    invalid point aborts the sweep with a ConfigurationError naming it. Grid point k
    uses seed stream (k,). Every row carries the run entropy, so passing it back as
    `seed` reproduces an unseeded sweep.
    """
    for name, values in (("weeks_grid", weeks_grid), ("psi_grid", psi_grid),
                         ("p_grid", p_grid), ("batching_modes", batching_modes)):
        if len(values) == 0:
            raise ConfigurationError(f"Sweep grid '{name}' is empty; nothing to simulate.")

    detectability = detectability or DetectabilityProcess()
    entropy = seed if seed is not None else np.random.SeedSequence().entropy

    grid = []
    for idx, (batching, weeks, psi, p) in enumerate(
            itertools.product(batching_modes, weeks_grid, psi_grid, p_grid)):
        inputs = ModelInputs(
            horizon_days=weeks * interval,
            psi=psi,
            p_detect=p,
            batching=batching,
            detectability=detectability,
            n_sims=n_sims,
            seed=entropy,
            interval=interval,
        )
        try:
            grid.append((idx, weeks, validate_inputs(inputs)))
        except ConfigurationError as err:
            raise ConfigurationError(
                f"Invalid sweep grid point #{idx} (batching={batching!r}, num_weeks={weeks!r}, "
                f"psi={psi!r}, p={p!r}): {err}") from err

    if verbose:
        print(f"Sweep entropy: {entropy}")
    rows: List[Dict] = []
    for idx, weeks, inputs in grid:
        res = run_configuration(inputs, n_jobs=n_jobs, stream=(idx,))
        if verbose:
            print(f"[{idx + 1}/{len(grid)}] {inputs.batching:<11s} weeks={weeks:<3d} "
                  f"psi={inputs.psi:<5g} p={inputs.p_detect:<5g} "
                  f"conv={res.conventional_detection_rate:.3f} hf={res.high_frequency_detection_rate:.3f}")
        rows.extend(result_rows(res))
    return rows


# ----------------------------
# REPORTING & VISUALIZATION
# ----------------------------

SWEEP_COLUMNS: Tuple[str, ...] = (
    "sample_method", "batching", "detectability", "num_weeks", "psi", "p",
    "detection_rate", "std_error", "n_sims", "entropy",
)


def summarize(result: AggregateResult) -> Dict:
    """JSON-serializable summary of one configuration."""
    inp = result.inputs
    diff_se = math.hypot(result.conventional_std_error, result.high_frequency_std_error)
    return {
        "inputs": {
            "horizon_days": inp.horizon_days,
            "num_weeks": inp.n_weeks,
            "interval": inp.interval,
            "psi": inp.psi,
            "p_detect": inp.p_detect,
            "batching": inp.batching,
            "detectability": inp.detectability.describe(),
            "n_sims": result.n_sims,
            "entropy": result.entropy,
        },
        "conventional": {
            "detection_rate": result.conventional_detection_rate,
            "std_error": result.conventional_std_error,
            "mean_daily_rate": result.conventional_mean_daily_rate,
        },
        "high_frequency": {
            "detection_rate": result.high_frequency_detection_rate,
            "std_error": result.high_frequency_std_error,
            "mean_daily_rate": result.high_frequency_mean_daily_rate,
        },
        "difference": {
            "high_frequency_minus_conventional": result.difference,
            "std_error_unpaired": diff_se,
        },
    }


def interpret(difference: float, std_error: float) -> str:
    """Short qualitative reading of the high-frequency minus conventional difference."""
    if abs(difference) <= 2.0 * std_error:
        return "No clear difference: the two sampling regimes detect about equally often."
    if difference > 0:
        return "Daily sampling detects the target more often than weekly batches."
    return "Weekly batches detect the target more often than daily sampling."


def write_sweep_csv(rows: List[Dict], path: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(SWEEP_COLUMNS)
        for row in rows:
            writer.writerow([row[c] for c in SWEEP_COLUMNS])


def print_sweep_table(rows: List[Dict]) -> None:
    """Print sweep rows as a fixed-width table."""
    print(f"{'method':<15s} {'batching':<11s} {'weeks':>5s} {'psi':>6s} {'p':>6s} {'rate':>7s} {'se':>7s}")
    for row in rows:
        print(f"{row['sample_method']:<15s} {row['batching']:<11s} {row['num_weeks']:>5d} "
              f"{row['psi']:>6.3f} {row['p']:>6.3f} {row['detection_rate']:>7.3f} {row['std_error']:>7.4f}")


def plot_sweep(rows: List[Dict], path: str = "detection_sweep.png") -> None:
    """Faceted plot of detection rate vs. number of weeks (rows: psi, columns: p)."""
    psis = sorted({r["psi"] for r in rows})
    ps = sorted({r["p"] for r in rows})
    series = sorted({(r["batching"], r["sample_method"]) for r in rows})

    fig, axes = plt.subplots(len(psis), len(ps), figsize=(3.2 * len(ps), 2.8 * len(psis)),
                             sharex=True, sharey=True, squeeze=False)
    for i, psi in enumerate(psis):
        for j, p in enumerate(ps):
            ax = axes[i][j]
            for batching, method in series:
                pts = sorted((r["num_weeks"], r["detection_rate"]) for r in rows
                             if r["psi"] == psi and r["p"] == p
                             and r["batching"] == batching and r["sample_method"] == method)
                if not pts:
                    continue
                xs, ys = zip(*pts)
                label = SAMPLE_METHOD_LABELS[method]
                if len(series) > 2:
                    label = f"{label}, {batching}"
                ax.plot(xs, ys, marker="o", label=label)
            ax.set_title(f"psi={psi:g}, p={p:g}", fontsize=9)
            ax.set_ylim(0.0, 1.0)
            if i == len(psis) - 1:
                ax.set_xlabel("Weeks sampled")
            if j == 0:
                ax.set_ylabel("P(≥1 detection)")
    axes[0][0].legend(fontsize=7)
    fig.suptitle("Detection probability: daily vs. weekly sampling")
    fig.tight_layout()
    fig.savefig(path, dpi=144)
    plt.close(fig)


# ----------------------------
# CLI
# ----------------------------

def resolve_detectability(mode: str,
                          phi: Optional[float] = None,
                          sigma: Optional[float] = None) -> DetectabilityProcess:
    """Build a DetectabilityProcess from a mode or preset name plus optional overrides."""
    key = (mode or "").strip().lower().replace("-", "_")
    if key in DETECTABILITY_PRESETS:
        proc = DetectabilityProcess.preset(key)
        if phi is not None:
            proc.phi = float(phi)
        if sigma is not None:
            proc.sigma = float(sigma)
        return proc
    mode = normalize_detectability_mode(mode)
    if mode == "constant":
        return DetectabilityProcess()
    if phi is None or sigma is None:
        raise ConfigurationError(
            "time_varying detectability needs both --phi and --sigma "
            f"(or use a preset: {', '.join(DETECTABILITY_PRESETS)}).")
    return DetectabilityProcess(mode="time_varying", phi=float(phi), sigma=float(sigma))


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Compare P(≥1 detection) for daily (high-frequency) vs. weekly batched (conventional) "
            "sampling of a rare, intermittently present target via Monte Carlo simulation."
        )
    )
    # Single configuration
    p.add_argument("--weeks", type=int, default=DEFAULT_N_WEEKS,
                   help="Number of weeks sampled (horizon = weeks × interval days).")
    p.add_argument("--horizon_days", type=int, default=None,
                   help="Horizon in days; overrides --weeks. Must be a multiple of --interval.")
    p.add_argument("--interval", type=int, default=SAMPLING_INTERVAL_DAYS,
                   help="Days between conventional collection events (= samples per batch).")
    p.add_argument("--psi", type=float, default=DEFAULT_PSI, help="Daily occupancy probability, in [0, 1).")
    p.add_argument("--p_detect", type=float, default=DEFAULT_P_DETECT,
                   help="Base per-sample detection probability, strictly between 0 and 1.")
    p.add_argument(
        "--batching", type=str, default="subsample",
        help="Conventional batching policy: subsample, independent, pooled."
    )
    # Detectability
    p.add_argument(
        "--detectability", type=str, default="constant",
        help=("constant, time_varying (with --phi/--sigma), or a preset: "
              + ", ".join(DETECTABILITY_PRESETS) + ".")
    )
    p.add_argument("--phi", type=float, default=None, help="AR(1) persistence of the logit drift.")
    p.add_argument("--sigma", type=float, default=None, help="Std dev of the logit drift innovations.")
    # Monte Carlo & random
    p.add_argument("--n_sims", type=int, default=DEFAULT_N_SIMS, help="Number of Monte Carlo trials.")
    p.add_argument("--seed", type=int, default=None, help="Random seed for reproducibility.")
    p.add_argument("--n_jobs", type=int, default=1, help="Worker processes for trial batches.")
    p.add_argument("--analytic", action="store_true",
                   help="Also print closed-form probabilities (constant detectability only).")
    # Sweep
    p.add_argument("--sweep", action="store_true", help="Run a grid sweep instead of one configuration.")
    p.add_argument("--weeks_grid", type=str, default="1-8", help='Weeks grid, e.g. "1-8" or "2,4,8".')
    p.add_argument("--psi_grid", type=str, default="0.05,0.10,0.15", help="Occupancy grid.")
    p.add_argument("--p_grid", type=str, default="0.05,0.10,0.15", help="Detection probability grid.")
    p.add_argument("--batching_grid", type=str, default=None,
                   help='Batching policies to sweep, e.g. "subsample,independent" (default: --batching).')
    # Output
    p.add_argument("--report_json", type=str, default=None, help="Path to save the summary (or sweep rows) as JSON.")
    p.add_argument("--report_csv", type=str, default=None,
                   help="Path to save per-method rows (one configuration or the sweep) as CSV.")
    p.add_argument("--plot", type=str, nargs="?", const="detection_sweep.png", default=None,
                   help='Save a faceted detection-rate plot (default file "detection_sweep.png").')
    p.add_argument("--list_presets", action="store_true", help="Print detectability presets and exit.")
    return p


def _main_single(args: argparse.Namespace, detectability: DetectabilityProcess) -> None:
    horizon = args.horizon_days if args.horizon_days is not None else args.weeks * args.interval
    inputs = ModelInputs(
        horizon_days=horizon,
        psi=args.psi,
        p_detect=args.p_detect,
        batching=args.batching,
        detectability=detectability,
        n_sims=args.n_sims,
        seed=args.seed,
        interval=args.interval,
    )
    result = run_configuration(inputs, n_jobs=args.n_jobs)
    summary = summarize(result)
    inp = summary["inputs"]
    conv, hf, diff = summary["conventional"], summary["high_frequency"], summary["difference"]

    print(f"Horizon: {inp['horizon_days']} days ({inp['num_weeks']} collections), psi={inp['psi']:g}, "
          f"p={inp['p_detect']:g}, batching={inp['batching']}, detectability={inp['detectability']}")
    print(f"P(≥1 detection), conventional:   {conv['detection_rate']:.2%} (±{conv['std_error']:.2%})")
    print(f"P(≥1 detection), high-frequency: {hf['detection_rate']:.2%} (±{hf['std_error']:.2%})")
    print(f"Difference (high-frequency − conventional): {diff['high_frequency_minus_conventional']:+.2%}")
    print(interpret(diff["high_frequency_minus_conventional"], diff["std_error_unpaired"]))

    if args.analytic:
        if detectability.mode != "constant":
            print("Closed form is only available for constant detectability.")
        else:
            a_conv, a_hf = analytic_detection_probability(
                inputs.horizon_days, inputs.psi, inputs.p_detect, inputs.interval, inputs.batching)
            print(f"Closed form: conventional={a_conv:.2%}, high-frequency={a_hf:.2%}")

    if args.report_json:
        with open(args.report_json, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)
        print(f"Saved JSON report to: {args.report_json}")

    rows = result_rows(result)
    if args.report_csv:
        write_sweep_csv(rows, args.report_csv)
        print(f"Saved CSV to: {args.report_csv}")
    if args.plot:
        plot_sweep(rows, path=args.plot)
        print(f"Saved plot: {args.plot}")


def _main_sweep(args: argparse.Namespace, detectability: DetectabilityProcess) -> None:
    batching_modes = ([b for b in re.split(r"[;,]\s*", args.batching_grid) if b]
                      if args.batching_grid else [args.batching])
    rows = run_sweep(
        weeks_grid=parse_grid(args.weeks_grid, int),
        psi_grid=parse_grid(args.psi_grid, float),
        p_grid=parse_grid(args.p_grid, float),
        batching_modes=batching_modes,
        detectability=detectability,
        n_sims=args.n_sims,
        seed=args.seed,
        interval=args.interval,
        n_jobs=args.n_jobs,
        verbose=True,
    )
    print()
    print_sweep_table(rows)

    if args.report_csv:
        write_sweep_csv(rows, args.report_csv)
        print(f"Saved sweep CSV to: {args.report_csv}")
    if args.report_json:
        with open(args.report_json, "w", encoding="utf-8") as f:
            json.dump(rows, f, indent=2)
        print(f"Saved JSON rows to: {args.report_json}")
    if args.plot:
        plot_sweep(rows, path=args.plot)
        print(f"Saved plot: {args.plot}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_arg_parser().parse_args(argv)

    if args.list_presets:
        print("Detectability presets:")
        for name, params in DETECTABILITY_PRESETS.items():
            print(f"- {name}: phi={params['phi']:g}, sigma={params['sigma']:g}")
        return

    if args.n_jobs < 1:
        raise ValueError("n_jobs must be ≥ 1.")
    detectability = resolve_detectability(args.detectability, args.phi, args.sigma)

    if args.sweep:
        _main_sweep(args, detectability)
    else:
        _main_single(args, detectability)


if __name__ == "__main__":
    main()
