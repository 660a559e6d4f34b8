"""
Tests for the carbon_spend CLI (carbon_spend/main.py).

Each command is driven through ``main(argv)``, which always exits via
SystemExit with the command's return code.
"""
import json
import shutil

import pytest

from carbon_spend.constants import BUNDLED_DATA_DIR
from carbon_spend.main import build_parser, main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CARBON_SPEND_DATA_DIR", "CARBON_SPEND_METHOD", "CARBON_SPEND_USE_FALLBACK",
                 "CARBON_SPEND_TOP_CATEGORIES", "CARBON_SPEND_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


class TestParser:

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_method_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["footprints", "--method", "scope2"])

    @pytest.mark.parametrize("top", ["0", "-1", "many"])
    def test_top_must_be_positive(self, top):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["baseline", "--top", top])

    def test_top_accepted(self):
        assert build_parser().parse_args(["baseline", "--top", "3"]).top == 3


class TestCommands:

    def test_baseline_writes_totals(self, tmp_path):
        out = tmp_path / "baseline.json"
        assert run(["baseline", "--out", str(out)]) == 0

        data = json.loads(out.read_text(encoding="utf-8"))
        assert set(data) == {"totalUSD", "totalKg", "byCat"}
        assert data["totalKg"] == pytest.approx(sum(b["kg"] for b in data["byCat"].values()))

    def test_demo_scenario_reduces_emissions(self, tmp_path):
        out = tmp_path / "demo.json"
        assert run(["demo", "--out", str(out)]) == 0

        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["comparison"]["totalKg"]["delta"] < 0
        assert data["scenario"]["title"].startswith("Cut flights")

    def test_scenario_from_file(self, tmp_path):
        scenario = tmp_path / "s.json"
        scenario.write_text(json.dumps([
            {"action": "scale_category_spend", "category": "Meals", "scale_factor": 0.0},
        ]), encoding="utf-8")
        out = tmp_path / "r.json"
        assert run(["scenario", "--scenario", str(scenario), "--out", str(out)]) == 0

        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["after"]["byCat"]["Meals"]["kg"] == 0.0

    def test_footprints_upstream(self, tmp_path):
        out = tmp_path / "fp.json"
        assert run(["footprints", "--method", "scope3_upstream", "--out", str(out)]) == 0

        data = json.loads(out.read_text(encoding="utf-8"))
        assert len(data["footprints"]) == 9
        assert data["summary"]["method"] == "scope3_upstream"
        assert data["summary"]["unknown_count"] == 0

    def test_footprints_full_chain_without_fallback(self, tmp_path):
        out = tmp_path / "fp.json"
        assert run(["footprints", "--no-fallback", "--out", str(out)]) == 0

        summary = json.loads(out.read_text(encoding="utf-8"))["summary"]
        # florist (null full-chain factor), unmapped MCC, and missing merchant block
        assert summary["unknown_count"] == 3

    def test_bad_scenario_file_returns_1(self, tmp_path):
        scenario = tmp_path / "bad.json"
        scenario.write_text("{oops", encoding="utf-8")
        assert run(["scenario", "--scenario", str(scenario)]) == 1

    def test_missing_input_returns_1(self, tmp_path):
        assert run(["baseline", "--transactions", str(tmp_path / "none.csv")]) == 1

    def test_bad_data_dir_returns_1(self, tmp_path):
        assert run(["baseline", "--data-dir", str(tmp_path / "missing")]) == 1

    def test_relative_data_dir_from_working_directory(self, monkeypatch, tmp_path):
        shutil.copytree(BUNDLED_DATA_DIR, tmp_path / "mydata")
        monkeypatch.chdir(tmp_path)
        assert run(["baseline", "--data-dir", "mydata", "--out", "b.json"]) == 0
        assert (tmp_path / "b.json").exists()

    def test_directory_as_input_returns_1(self, tmp_path):
        (tmp_path / "x.csv").mkdir()
        assert run(["baseline", "--transactions", str(tmp_path / "x.csv")]) == 1

    def test_baseline_with_top(self, tmp_path):
        out = tmp_path / "b.json"
        assert run(["baseline", "--top", "2", "--out", str(out)]) == 0
