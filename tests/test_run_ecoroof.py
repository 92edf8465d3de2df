"""
Tests for the command-line driver in scripts/run_ecoroof.py.
"""
import importlib.util
from pathlib import Path

import pandas as pd
import pytest

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "run_ecoroof.py"


@pytest.fixture
def run_ecoroof():
    spec = importlib.util.spec_from_file_location("run_ecoroof", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def forcing_csv(tmp_path):
    path = tmp_path / "forcing.csv"
    pd.DataFrame(
        {
            'time': ['2024-06-01 10:00', '2024-06-01 11:00', '2024-06-01 12:00', '2024-06-01 13:00'],
            'outdoor_dry_bulb_c': [18.0, 20.0, 22.0, 21.0],
            'wind_speed': 3.0,
            'relative_humidity': 55.0,
            'beam_solar': [0.0, 300.0, 600.0, 200.0],
            'precipitation_m': [0.0, 0.0, 0.001, 0.0],
        }
    ).to_csv(path, index=False)
    return path


class TestRunEcoroof:

    def test_report_keeps_forcing_index(self, run_ecoroof, forcing_csv, tmp_path, capsys):
        out = tmp_path / "report.csv"

        status = run_ecoroof.main(["--forcing", str(forcing_csv), "--out", str(out), "--index-col", "time"])

        assert status == 0
        report = pd.read_csv(out)
        assert list(report['time']) == list(pd.read_csv(forcing_csv)['time'])
        assert list(report['timestep']) == [1, 2, 3, 4]
        assert report['cumulative_precipitation_m'].iloc[-1] == pytest.approx(0.001)
        assert "Timesteps: 4" in capsys.readouterr().out

    def test_report_numbers_rows_without_index_column(self, run_ecoroof, forcing_csv, tmp_path):
        out = tmp_path / "report.csv"

        run_ecoroof.main(["--forcing", str(forcing_csv), "--out", str(out)])

        report = pd.read_csv(out)
        assert list(report['forcing_row']) == [0, 1, 2, 3]
