from pathlib import Path

import pytest

from prg_convert.cli import parse_args, run_command

FIXTURES = Path("tests/fixtures")


def _run_once(output: Path, run_id: str) -> None:
    args = parse_args(
        [
            "--config-dir",
            "config",
            "--input-paths",
            str(FIXTURES / "sample_model2012.xml"),
            "--output-path",
            str(output),
            "--schema-version",
            "2012",
            "--output-format",
            "csv",
            "--run-id",
            run_id,
        ]
    )
    assert run_command(args) == 0


@pytest.mark.regression
def test_csv_outputs_are_byte_stable_for_same_inputs(tmp_path: Path):
    first = tmp_path / "first" / "punkty.csv"
    second = tmp_path / "second" / "punkty.csv"

    _run_once(first, "run-a")
    _run_once(second, "run-b")

    assert first.read_bytes() == second.read_bytes()
