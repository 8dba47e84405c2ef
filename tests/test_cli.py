"""Tests for the rx-safety command line interface."""

import json

from prescription_safety.cli import EXIT_CONFIG_ERROR, EXIT_OK, EXIT_WARNINGS, main


class TestCheckCommand:
    """Test `rx-safety check`."""

    def test_interaction_exit_code(self, capsys):
        """Test warnings give the warning exit status."""
        assert main(["check", "Warfarin", "Aspirin"]) == EXIT_WARNINGS
        out = capsys.readouterr().out
        assert "Dangerous drug interaction detected" in out
        assert "Warfarin + Aspirin" in out

    def test_clean_exit_code(self, capsys):
        """Test a clean prescription exits successfully."""
        assert main(["check", "Paracetamol", "--condition", "hypertension"]) == EXIT_OK
        assert "No warnings" in capsys.readouterr().out

    def test_json_output(self, capsys):
        """Test JSON output of a check."""
        assert main(["--json", "check", "Brufen", "-c", "renal_impairment"]) == EXIT_WARNINGS
        data = json.loads(capsys.readouterr().out)
        assert data["warnings"][0]["drug"] == "ibuprofen"
        assert data["warnings"][0]["drug_display_name"] == "Brufen (ibuprofen)"
        assert data["highest_severity"] == "caution"

    def test_all_flag(self, capsys):
        """Test the flag reporting every interaction."""
        main(["--json", "check", "--all", "Warfarin", "Aspirin", "Ibuprofen"])
        data = json.loads(capsys.readouterr().out)
        assert data["counts"]["drug-drug"] == 3


class TestResolveCommand:
    """Test `rx-safety resolve`."""

    def test_resolve(self, capsys):
        """Test resolving names."""
        assert main(["resolve", "calpol", "qwzx"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "calpol: paracetamol" in out
        assert "qwzx: unresolved" in out

    def test_resolve_json(self, capsys):
        """Test JSON output of resolve."""
        main(["--json", "resolve", "Augmentin 625"])
        [row] = json.loads(capsys.readouterr().out)
        assert row["drug"] == "amoxicillin + clavulanic acid"
        assert row["method"] == "alias"


class TestGuidanceCommand:
    """Test `rx-safety guidance`."""

    def test_guidance(self, capsys):
        """Test guidance output for a condition."""
        assert main(["guidance", "pregnancy"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "PREGNANCY" in out
        assert "Use pregnancy-safe alternatives." in out
        assert "Safer alternatives" in out
        assert "ibuprofen" in out


class TestStatsCommand:
    """Test `rx-safety stats`."""

    def test_stats_json(self, capsys):
        """Test JSON output of stats."""
        assert main(["--json", "stats"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["ruleset_version"] == "2026.10.1"


class TestConfigErrors:
    """Test exit status for bad datasets."""

    def test_invalid_dataset(self, tmp_path, capsys):
        """Test an invalid dataset exits with the config error status."""
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"format_version": 9}))
        assert main(["--ruleset", str(path), "stats"]) == EXIT_CONFIG_ERROR
        assert "invalid rule dataset" in capsys.readouterr().err

    def test_custom_dataset(self, tmp_path, capsys, sample_data):
        """Test a dataset passed on the command line."""
        path = tmp_path / "rules.json"
        path.write_text(json.dumps(sample_data))
        assert main(["--ruleset", str(path), "resolve", "brufen"]) == EXIT_OK
        assert "ibuprofen" in capsys.readouterr().out

    def test_malformed_dataset(self, tmp_path, capsys, sample_data):
        """Test a wrongly shaped dataset exits with the config error status."""
        sample_data["contraindications"]["ibuprofen"] = ["pregnancy"]
        path = tmp_path / "rules.json"
        path.write_text(json.dumps(sample_data))
        assert main(["--ruleset", str(path), "stats"]) == EXIT_CONFIG_ERROR
        assert "contraindications['ibuprofen']" in capsys.readouterr().err
