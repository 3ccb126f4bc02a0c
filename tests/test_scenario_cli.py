"""
TRADE-UP Scenario and CLI Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import copy
import json
import pathlib

import pytest
import yaml

from tradeup.cli import CLIError, OutputFormat, TradeUpCLI, format_output
from tradeup.scenario import ScenarioError, load_scenario, run_scenario, validate_scenario

SCENARIO_DIR = pathlib.Path(__file__).resolve().parents[1] / "scenarios"
TRADE_UP = SCENARIO_DIR / "trade_up_chain.yaml"
EXPIRED = SCENARIO_DIR / "expired_chain.yaml"


@pytest.fixture
def trade_up_doc():
    return load_scenario(TRADE_UP)


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    # Keep stray tradeup.yaml files out of CLI runs.
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))


# =============================================================================
# SCENARIO VALIDATION
# =============================================================================

class TestScenarioValidation:
    """Scenario documents are checked against the bundled JSON Schema."""

    def test_bundled_scenarios_are_valid(self):
        """Shipped examples pass validation."""
        for path in (TRADE_UP, EXPIRED):
            assert validate_scenario(yaml.safe_load(path.read_text())) == []

    def test_deposit_step_requires_fields(self, trade_up_doc):
        """A deposit without collection and asset id is invalid."""
        trade_up_doc["steps"].append({"at": 50, "action": "deposit", "actor": "Q"})
        errors = validate_scenario(trade_up_doc)
        assert errors
        assert any("collection" in e for e in errors)

    def test_final_spec_wildcard_token(self, trade_up_doc):
        """Only '*' or an integer names the final asset."""
        trade_up_doc["escrow"]["final"]["asset_id"] = "any"
        assert validate_scenario(trade_up_doc)

    def test_unknown_action(self, trade_up_doc):
        """Step actions are a closed set."""
        trade_up_doc["steps"][0]["action"] = "steal"
        assert validate_scenario(trade_up_doc)

    def test_load_missing_file(self, tmp_path):
        """A missing scenario file is a ScenarioError."""
        with pytest.raises(ScenarioError):
            load_scenario(tmp_path / "nope.yaml")

    def test_load_invalid_document(self, tmp_path):
        """Schema violations are reported on load."""
        path = tmp_path / "bad.yaml"
        path.write_text("collections: []\nescrow: {}\nsteps: []\n")
        with pytest.raises(ScenarioError, match="invalid scenario"):
            load_scenario(path)


# =============================================================================
# SCENARIO EXECUTION
# =============================================================================

class TestScenarioRun:
    """Replaying scenarios against in-memory collections."""

    def test_trade_up_chain(self, trade_up_doc):
        """Both participants end up with their predecessor's asset."""
        report = run_scenario(trade_up_doc)

        assert report.failed_steps == []
        assert [s.status for s in report.steps] == ["active", "succeeded", "succeeded", "succeeded"]
        assert report.ownership == {"ClassA": {1: "Y"}, "ClassB": {42: "X"}}
        assert report.escrow["status"] == "succeeded"
        assert all(d["consumed"] for d in report.escrow["deposits"])
        assert [e["event_type"] for e in report.events] == [
            "DepositAccepted", "DepositAccepted", "ChainSucceeded", "AssetRedeemed", "AssetRedeemed",
        ]

    def test_expired_chain(self):
        """Early redemption and late deposits are refused; X reclaims."""
        report = run_scenario(load_scenario(EXPIRED))

        assert [(s.ok, s.error_type) for s in report.steps] == [
            (True, ""),
            (False, "ChainStillActive"),
            (True, ""),
            (False, "DepositRejected"),
            (True, ""),
        ]
        assert report.steps[2].status == "expired"
        assert report.steps[4].result[0]["kind"] == "reclaim"
        assert report.ownership["ClassA"] == {1: "X", 7: "Z"}
        assert report.ownership["Rewards"] == {}

    def test_minter_credits_trades(self, trade_up_doc):
        """A configured minter collection receives one token per trade."""
        trade_up_doc["collections"].append({"name": "Rewards"})
        trade_up_doc["escrow"]["minter"] = "Rewards"
        report = run_scenario(trade_up_doc)
        assert sorted(report.ownership["Rewards"].values()) == ["X", "Y"]

    def test_chain_length_limit(self, trade_up_doc):
        """max_chain_length is honoured by the gate."""
        trade_up_doc["escrow"]["max_chain_length"] = 1
        report = run_scenario(trade_up_doc)
        assert report.steps[1].error_type == "DepositRejected"

    def test_step_outcome_serialization(self, trade_up_doc):
        """Failed steps carry the error class; successful ones the result."""
        trade_up_doc["steps"].insert(0, {"at": 5, "action": "redeem", "actor": "X", "index": 0})
        report = run_scenario(trade_up_doc).to_dict()
        failed, deposited = report["steps"][0], report["steps"][1]
        assert failed["ok"] is False
        assert failed["error_type"] == "NothingToRedeem"
        assert "result" not in failed
        assert deposited["result"] == {"index": 0}

    def test_non_owner_deposit_is_step_failure(self, trade_up_doc):
        """Custody errors are recorded against the step."""
        trade_up_doc["steps"][0]["actor"] = "mallory"
        report = run_scenario(trade_up_doc)
        assert report.steps[0].error_type == "NotOwner"

    @pytest.mark.parametrize("mutate,match", [
        (lambda d: d["escrow"]["starting"].update(collection="ClassZ"), "Unknown collection"),
        (lambda d: d["collections"].append({"name": "ClassA"}), "Duplicate"),
        (lambda d: d["steps"][1].update(at=5), "earlier"),
        (lambda d: d["escrow"].update(minter="Nobody"), "minter"),
    ])
    def test_inconsistent_documents(self, trade_up_doc, mutate, match):
        """Schema-valid but inconsistent documents raise ScenarioError."""
        doc = copy.deepcopy(trade_up_doc)
        mutate(doc)
        with pytest.raises(ScenarioError, match=match):
            run_scenario(doc)

    def test_unknown_deposit_collection(self, trade_up_doc):
        """A deposit from an undeclared collection aborts the run."""
        trade_up_doc["steps"][0]["collection"] = "ClassZ"
        with pytest.raises(ScenarioError, match="ClassZ"):
            run_scenario(trade_up_doc)


# =============================================================================
# CLI
# =============================================================================

class TestCLI:
    """tradeup command-line interface."""

    def run(self, capsys, *args):
        code = TradeUpCLI().run(list(args))
        out, err = capsys.readouterr()
        return code, out, err

    def test_simulate_json(self, capsys):
        """simulate prints the report as JSON."""
        code, out, _ = self.run(capsys, "simulate", str(TRADE_UP))
        assert code == 0
        report = json.loads(out)
        assert report["escrow"]["status"] == "succeeded"
        assert report["ownership"]["ClassB"] == {"42": "X"}

    def test_simulate_yaml(self, capsys):
        """--format yaml emits a YAML document."""
        code, out, _ = self.run(capsys, "--format", "yaml", "simulate", str(TRADE_UP))
        assert code == 0
        assert yaml.safe_load(out)["name"] == "trade-up-chain"

    def test_simulate_text(self, capsys):
        """--format text summarizes steps and ownership."""
        code, out, _ = self.run(capsys, "-f", "text", "simulate", str(EXPIRED))
        assert code == 0
        assert out.startswith("escrow escrow-expiring: expired")
        assert "ChainStillActive" in out
        assert "ClassA#1: X" in out

    def test_simulate_strict(self, capsys):
        """--strict exits 2 when any step was rejected."""
        code, out, err = self.run(capsys, "simulate", "--strict", str(EXPIRED))
        assert code == 2
        assert json.loads(out)["name"] == "expired-chain"
        assert "2 step(s) rejected" in err

    def test_simulate_missing_file(self, capsys, tmp_path):
        """Errors go to stderr with a non-zero exit."""
        code, _, err = self.run(capsys, "simulate", str(tmp_path / "missing.yaml"))
        assert code == 1
        assert "not found" in err

    def test_validate(self, capsys, tmp_path):
        """validate reports schema errors."""
        code, out, _ = self.run(capsys, "validate", str(TRADE_UP))
        assert code == 0
        assert json.loads(out) == {"valid": True, "errors": []}

        bad = tmp_path / "bad.yaml"
        bad.write_text("collections: []\nescrow: {}\nsteps: []\n")
        code, out, err = self.run(capsys, "validate", str(bad))
        assert code == 1
        assert json.loads(out)["valid"] is False
        assert "schema error" in err

    def test_config_get(self, capsys):
        """config get prints one value."""
        code, out, _ = self.run(capsys, "config", "get", "escrow.max_chain_length")
        assert code == 0
        assert json.loads(out) == {"escrow.max_chain_length": 0}

    def test_config_show_with_file(self, capsys, tmp_path):
        """--config loads an explicit file."""
        path = tmp_path / "custom.yaml"
        path.write_text("escrow:\n  default_ttl_seconds: 600\n")
        code, out, _ = self.run(capsys, "--config", str(path), "config", "show")
        assert code == 0
        assert json.loads(out)["escrow"]["default_ttl_seconds"] == 600

    def test_config_file_sets_log_level(self, capsys, tmp_path):
        """--config log settings reach loggers created at import."""
        import logging

        from tradeup import escrow

        path = tmp_path / "quiet.yaml"
        path.write_text("observability:\n  log_level: error\n")
        code, _, _ = self.run(capsys, "--config", str(path), "config", "get", "observability.log_level")
        assert code == 0
        assert escrow._logger._logger.level == logging.ERROR

    def test_invalid_log_level_environment(self, capsys, monkeypatch):
        """An unknown log level is reported as a configuration error."""
        monkeypatch.setenv("TRADEUP_LOG_LEVEL", "loud")
        code, _, err = self.run(capsys, "config", "get", "escrow.max_chain_length")
        assert code == 1
        assert "Invalid log level: loud" in err

    def test_config_validate(self, capsys, monkeypatch):
        """config validate fails on invalid environment values."""
        code, _, _ = self.run(capsys, "config", "validate")
        assert code == 0
        monkeypatch.setenv("TRADEUP_LOG_FORMAT", "xml")
        code, _, err = self.run(capsys, "config", "validate")
        assert code == 1
        assert "observability.log_format" in err

    def test_config_schema(self, capsys):
        """config schema exports every setting."""
        code, out, _ = self.run(capsys, "config", "schema")
        assert code == 0
        assert "max_chain_length" in json.loads(out)["properties"]["escrow"]

    def test_config_requires_subcommand(self, capsys):
        """A bare config command is an error."""
        code, _, err = self.run(capsys, "config")
        assert code == 1
        assert "subcommand" in err

    def test_no_command_prints_help(self, capsys):
        """Running without a command shows usage."""
        code, out, _ = self.run(capsys)
        assert code == 0
        assert "usage" in out

    def test_cli_error_exit_code(self):
        """CLIError carries its exit code."""
        assert CLIError("x", exit_code=3).exit_code == 3

    def test_format_output_text(self):
        """Plain mappings render as key: value lines."""
        assert format_output({"a": 1, "b": 2}, OutputFormat.TEXT) == "a: 1\nb: 2"
