"""Integration tests for YAML-driven experiment compilation."""

import textwrap

import pytest

from seqforge import ExperimentPipeline, compile_experiment
from seqforge.errors import ConfigurationError

ODDBALL_YAML = textwrap.dedent(
    """
    metadata:
      name: yaml-oddball
    seed: 11
    sample_rate_hz: 16000
    n_trials: 20
    stimuli:
      std:
        type: tone
        params: {frequency_hz: 1000, level: 0.2, envelope: {attack_ms: 5, release_ms: 5}}
        routing: [0]
      dev:
        type: tone
        params: {frequency_hz: 2000, level: 0.2}
        routing: [1]
    paradigm:
      paradigm: oddball
      tokens:
        - {label: standard, stimulus_ref: std, base_probability: 0.75, duration_ms: 40}
        - {label: deviant, stimulus_ref: dev, base_probability: 0.25, duration_ms: 40}
      selection: {mode: balanced_shuffle}
      iti_ms:
        dist: uniform
        min: 300
        max: 400
        scope: per_trial
      constraints:
        max_consecutive: {deviant: 1}
    compiler:
      ttl_pulse_samples: 16
      tail_padding_ms: 100
    """
)


class TestYamlPipeline:
    """Test compiling experiments from YAML files."""

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "oddball.yaml"
        path.write_text(ODDBALL_YAML, encoding="utf-8")

        pipeline = ExperimentPipeline.from_yaml(path)
        artifact = pipeline.run()

        assert len(artifact.events) == 20
        assert artifact.n_channels == 2
        assert artifact.manifest["params"]["plan"]["counts"] == {"standard": 15, "deviant": 5}
        assert artifact.manifest["params"]["experiment"]["metadata"]["name"] == "yaml-oddball"

    def test_routing_per_token(self, tmp_path):
        path = tmp_path / "oddball.yaml"
        path.write_text(ODDBALL_YAML, encoding="utf-8")
        artifact = compile_experiment(path)

        for event, window in zip(artifact.events, artifact.trial_table):
            start = event.sample_index
            segment = artifact.audio[start:start + 640]
            silent = 1 if window.label == "standard" else 0
            assert abs(segment[:, silent]).max() == 0.0
            assert abs(segment[:, 1 - silent]).max() > 0.0

    def test_no_consecutive_deviants(self, tmp_path):
        path = tmp_path / "oddball.yaml"
        path.write_text(ODDBALL_YAML, encoding="utf-8")
        labels = [w.label for w in compile_experiment(path).trial_table]
        assert all(not (a == b == "deviant") for a, b in zip(labels, labels[1:]))

    def test_jittered_iti_within_bounds(self, tmp_path):
        path = tmp_path / "oddball.yaml"
        path.write_text(ODDBALL_YAML, encoding="utf-8")
        windows = compile_experiment(path).trial_table
        for prev, window in zip(windows, windows[1:]):
            gap = window.onset_ms - (prev.onset_ms + prev.duration_ms)
            assert 300.0 <= gap <= 400.0

    def test_tail_padding(self, tmp_path):
        path = tmp_path / "oddball.yaml"
        path.write_text(ODDBALL_YAML, encoding="utf-8")
        artifact = compile_experiment(path)
        last = artifact.trial_table[-1]
        assert artifact.duration_ms == pytest.approx(last.onset_ms + last.duration_ms + 100.0, abs=0.1)

    def test_same_file_same_hash(self, tmp_path):
        path = tmp_path / "oddball.yaml"
        path.write_text(ODDBALL_YAML, encoding="utf-8")
        assert compile_experiment(path).manifest_json == compile_experiment(path).manifest_json

    def test_duplicate_keys_rejected(self, tmp_path):
        path = tmp_path / "dup.yaml"
        path.write_text(ODDBALL_YAML + "n_trials: 30\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate key 'n_trials'"):
            compile_experiment(path)

    def test_invalid_yaml_reports_paths(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(ODDBALL_YAML.replace("stimulus_ref: dev", "stimulus_ref: nope"),
                        encoding="utf-8")
        with pytest.raises(ConfigurationError, match=r"paradigm\.tokens\[1\]\.stimulus_ref"):
            ExperimentPipeline.from_yaml(path)
