import csv
import json

import pytest

from detection_sampling_model import main, ConfigurationError


def test_cli_single_configuration(capsys, tmp_path):
    out_json = tmp_path / "summary.json"
    main(["--weeks", "4", "--psi", "0.2", "--p_detect", "0.3", "--n_sims", "300",
          "--seed", "1", "--analytic", "--report_json", str(out_json)])
    out = capsys.readouterr().out
    assert "conventional" in out and "high-frequency" in out
    assert "Closed form" in out
    summary = json.loads(out_json.read_text(encoding="utf-8"))
    assert summary["inputs"]["horizon_days"] == 28
    assert summary["inputs"]["entropy"] == 1


def test_cli_list_presets(capsys):
    main(["--list_presets"])
    out = capsys.readouterr().out
    assert "high_volatility" in out and "low_volatility" in out


def test_cli_sweep_writes_reports(capsys, tmp_path):
    out_csv = tmp_path / "rows.csv"
    out_json = tmp_path / "rows.json"
    main(["--sweep", "--weeks_grid", "1-2", "--psi_grid", "0.1", "--p_grid", "0.2,0.4",
          "--batching_grid", "subsample,independent", "--detectability", "low_volatility",
          "--n_sims", "100", "--seed", "3", "--report_csv", str(out_csv), "--report_json", str(out_json)])
    out = capsys.readouterr().out
    assert "[8/8]" in out
    rows = json.loads(out_json.read_text(encoding="utf-8"))
    assert len(rows) == 16
    with out_csv.open("r", encoding="utf-8") as f:
        assert len(list(csv.reader(f))) == 17


def test_cli_rejects_bad_horizon():
    with pytest.raises(ConfigurationError):
        main(["--horizon_days", "30", "--n_sims", "10"])


def test_cli_time_varying_requires_parameters():
    with pytest.raises(ConfigurationError):
        main(["--detectability", "time_varying", "--phi", "0.3", "--n_sims", "10"])


def test_cli_single_configuration_writes_csv_and_plot(capsys, tmp_path):
    out_csv = tmp_path / "single.csv"
    out_png = tmp_path / "single.png"
    main(["--n_sims", "20", "--seed", "1", "--report_csv", str(out_csv), "--plot", str(out_png)])
    out = capsys.readouterr().out
    assert "Saved CSV" in out and "Saved plot" in out
    with out_csv.open("r", encoding="utf-8") as f:
        body = list(csv.reader(f))
    assert len(body) == 3
    assert body[0][-1] == "entropy"
    assert out_png.exists() and out_png.stat().st_size > 0


def test_cli_sweep_prints_entropy(capsys):
    main(["--sweep", "--weeks_grid", "1", "--psi_grid", "0.1", "--p_grid", "0.2",
          "--n_sims", "20", "--seed", "7"])
    assert "Sweep entropy: 7" in capsys.readouterr().out


def test_cli_sweep_rejects_empty_grid():
    with pytest.raises(ConfigurationError, match="p_grid"):
        main(["--sweep", "--p_grid", "", "--n_sims", "10"])
