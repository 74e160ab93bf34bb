"""
Tests for the command-line interface.
"""

import json

import pytest

from sonification.cli import build_parser, main


class TestParser:
    """Tests for argument parsing."""

    def test_clusters_auto_or_int(self):
        """Test that --clusters accepts 'auto' and integers."""
        parser = build_parser()
        assert parser.parse_args(["analyze", "a.json", "--clusters", "auto"]).clusters == "auto"
        assert parser.parse_args(["analyze", "a.json", "--clusters", "4"]).clusters == 4

    def test_clusters_invalid(self):
        """Test that other --clusters values are rejected."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["analyze", "a.json", "--clusters", "lots"])

    def test_command_required(self):
        """Test that a subcommand is required."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    """Tests for the CLI entry point."""

    def test_analyze_writes_json(self, dataset_file, tmp_path):
        """Test that analyze writes one result file per dataset."""
        out_dir = tmp_path / "out"
        exit_code = main(["analyze", str(dataset_file), "--clusters", "3", "-o", str(out_dir)])
        assert exit_code == 0

        with open(out_dir / "mixed_sonification.json") as f:
            data = json.load(f)
        assert len(data["clusters"]) == 3
        assert data["seed"] > 0

    def test_analyze_prints_summary(self, dataset_file, capsys):
        """Test the printed summary."""
        assert main(["analyze", str(dataset_file), "--seed", "5", "--clusters", "2"]) == 0
        out = capsys.readouterr().out
        assert "mixed: 30 neurons, seed 5" in out
        assert "Cluster 0" in out

    def test_analyze_with_config(self, dataset_file, tmp_path, sample_config_yaml, capsys):
        """Test that a YAML configuration is applied."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(sample_config_yaml)
        assert main(["analyze", str(dataset_file), "--config", str(config_path)]) == 0
        out = capsys.readouterr().out
        assert "seed 42" in out
        assert "Cluster 3" in out

    def test_missing_dataset(self, tmp_path):
        """Test that a missing dataset exits with status 1."""
        assert main(["analyze", str(tmp_path / "missing.json")]) == 1

    def test_invalid_config(self, dataset_file, tmp_path):
        """Test that an invalid configuration exits with status 1."""
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("n_components: 50\n")
        assert main(["analyze", str(dataset_file), "--config", str(config_path)]) == 1

    def test_compare(self, dataset_file, capsys):
        """Test comparing a dataset with itself."""
        assert main(["compare", str(dataset_file), str(dataset_file)]) == 0
        out = capsys.readouterr().out
        assert "Overall concordance" in out
        assert "Highly Concordant" in out
        assert "Average difference:       0.000" in out
        assert "Minimal differences" in out
