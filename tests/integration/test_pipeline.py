"""Integration tests for the end-to-end compile pipeline."""

import copy
import dataclasses

import numpy as np
import pytest

from seqforge import ExperimentConfig, ExperimentPipeline, SequenceArtifact, compile_experiment
from seqforge.errors import ConfigurationError, SchemaError


class TestOddballPipeline:
    """Oddball document through every stage."""

    def test_run(self, experiment_document):
        artifact = ExperimentPipeline(experiment_document).run()

        assert isinstance(artifact, SequenceArtifact)
        assert len(artifact.events) == 100
        assert len(artifact.trial_table) == 100
        assert artifact.n_channels == 2
        assert artifact.ttl.dtype == np.uint8
        # 50 ms elements, 200 ms ITI at 8 kHz
        assert [e.sample_index for e in artifact.events[:3]] == [0, 2000, 4000]
        assert artifact.n_samples == 99 * 2000 + 400
        assert artifact.verify()

    def test_manifest_records_plan(self, experiment_document):
        manifest = ExperimentPipeline(experiment_document).run().manifest
        plan = manifest["params"]["plan"]
        assert plan["counts"] == {"standard": 80, "deviant": 20}
        assert plan["paradigm"] == "oddball"
        assert manifest["master_seed"] == 42
        assert manifest["params"]["experiment"]["metadata"] == {"name": "oddball-test"}

    def test_event_codes_match_labels(self, experiment_document):
        artifact = ExperimentPipeline(experiment_document).run()
        codes = [e.code for e in artifact.events]
        labels = [w.label for w in artifact.trial_table]
        assert codes == [1 if label == "standard" else 2 for label in labels]
        assert int(artifact.ttl[artifact.events[0].sample_index]) == codes[0]

    def test_deterministic(self, experiment_document):
        a = ExperimentPipeline(copy.deepcopy(experiment_document)).run()
        b = ExperimentPipeline(copy.deepcopy(experiment_document)).run()
        assert a == b
        assert a.content_hash() == b.content_hash()

    def test_seed_changes_output(self, experiment_document):
        a = ExperimentPipeline(copy.deepcopy(experiment_document)).run()
        experiment_document["seed"] = 43
        experiment_document["paradigm"]["selection"]["seed"] = 43
        b = ExperimentPipeline(experiment_document).run()
        assert a.content_hash() != b.content_hash()

    def test_missing_seed_is_recorded(self, experiment_document):
        del experiment_document["seed"]
        del experiment_document["paradigm"]["selection"]["seed"]
        pipeline = ExperimentPipeline(experiment_document)
        assert pipeline.config.seed is not None
        assert pipeline.config.paradigm.selection.seed == pipeline.config.seed

        first = pipeline.run()
        replay = ExperimentPipeline(pipeline.config.to_dict()).run()
        assert first == replay

    def test_accepts_typed_config(self, experiment_document):
        config = ExperimentConfig.from_dict(experiment_document)
        artifact = ExperimentPipeline(config).run()
        assert len(artifact.events) == 100

    def test_rejects_invalid_typed_config(self, experiment_document):
        config = ExperimentConfig.from_dict(experiment_document)
        standard, deviant = config.paradigm.tokens
        tokens = [standard, dataclasses.replace(deviant, stimulus_ref="missing")]
        config = dataclasses.replace(
            config, paradigm=dataclasses.replace(config.paradigm, tokens=tokens)
        )
        with pytest.raises(ConfigurationError, match=r"paradigm\.tokens\[1\]\.stimulus_ref"):
            ExperimentPipeline(config)


class TestOtherParadigms:
    def test_local_global(self, experiment_document, local_global_paradigm):
        experiment_document["paradigm"] = local_global_paradigm
        experiment_document["n_trials"] = 10
        artifact = ExperimentPipeline(experiment_document).run()

        assert len(artifact.events) == 40
        # 4 items 100 ms apart, trial length 350 ms, ITI 500 ms
        assert [e.time_ms for e in artifact.events[:5]] == [0.0, 100.0, 200.0, 300.0, 850.0]
        assert [e.element_index for e in artifact.events[:5]] == [0, 1, 2, 3, 0]
        assert artifact.manifest["params"]["plan"]["counts"] == {"xxxY": 5, "xxxX": 5}

    def test_foreperiod_with_omissions(self, experiment_document, foreperiod_paradigm):
        experiment_document["paradigm"] = foreperiod_paradigm
        experiment_document["n_trials"] = 10
        artifact = ExperimentPipeline(experiment_document).run()

        omitted = [w for w in artifact.trial_table if w.label == "omission"]
        assert len(omitted) == 2
        assert all(w.n_elements == 1 for w in omitted)
        assert len(artifact.events) == 10 + 8
        cue_codes = {e.code for e in artifact.events if e.element_index == 0}
        assert cue_codes == {1}


class TestInvalidDocuments:
    def test_schema_errors_reported_together(self, experiment_document):
        experiment_document["n_trials"] = 0
        experiment_document["compiler"]["timing_check"] = "strict"
        with pytest.raises(SchemaError) as excinfo:
            ExperimentPipeline(experiment_document)
        paths = {e.path for e in excinfo.value.errors}
        assert paths == {"n_trials", "compiler.timing_check"}

    def test_configuration_error(self, experiment_document):
        experiment_document["paradigm"]["tokens"][1]["stimulus_ref"] = "missing"
        with pytest.raises(ConfigurationError, match="invalid_reference"):
            compile_experiment(experiment_document)


class TestCompileExperiment:
    def test_writes_hdf5(self, experiment_document, tmp_path):
        pytest.importorskip("h5py")
        path = tmp_path / "oddball.h5"
        artifact = compile_experiment(experiment_document, output_path=path)
        assert path.exists()
        assert SequenceArtifact.read_hdf5(path) == artifact
