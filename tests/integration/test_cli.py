"""
End-to-end tests for the calltagger command line (fake provider client).
"""

import json

import pytest

from calltagger import main as cli
from calltagger.providers.base import AIClient, ChatCompletionResult
from calltagger.utils.config import reset_config_cache

RESPONSE = json.dumps({"tags": [
    {"funnel_stage": "BOFU", "topic": "roi_financial_outcomes", "confidence": 0.9},
    {"funnel_stage": "BOFU", "topic": "not_a_topic", "confidence": 0.9},
]})


class CannedClient(AIClient):

    @property
    def provider_name(self):
        return "canned"

    @property
    def model_name(self):
        return "model"

    def chat_completion(self, options):
        return ChatCompletionResult(content=RESPONSE, total_tokens=100)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "provider": "openai",
        "providers": {"openai": {"api_key": "unused"}},
        "tagger": {"concurrency": 2},
        "calibration": {"enabled": True, "curve_file": str(tmp_path / "curve.json")},
        "log_level": "WARNING",
    }))
    monkeypatch.setattr(cli, "build_client_from_config", lambda config: CannedClient())
    reset_config_cache()
    yield str(path)
    reset_config_cache()


@pytest.mark.timeout(30)
class TestCli:

    def test_show_config(self, config_file, capsys):
        assert cli.main(["--config", config_file, "show-config"]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed["tagger"] == {"concurrency": 2}

    def test_tag_text(self, config_file, capsys):
        assert cli.main(["--config", config_file, "tag", "--text", "ROI was 3x in year one"]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed == {
            "tags": [{"funnel_stage": "BOFU", "topic": "roi_financial_outcomes", "confidence": 0.9}],
            "cached": False,
        }

    def test_tag_file(self, config_file, tmp_path, capsys):
        transcripts = tmp_path / "transcripts.json"
        transcripts.write_text(json.dumps({"calls": {
            "c1": [{"id": "k0", "text": "one"}, {"id": "k1", "text": "two"}],
            "c2": [{"id": "k2", "text": "one"}],
        }}))

        assert cli.main(["--config", config_file, "tag-file", str(transcripts)]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert list(printed["calls"]) == ["c1", "c2"]
        assert [c["chunk_id"] for c in printed["calls"]["c1"]["chunks"]] == ["k0", "k1"]
        assert printed["calls"]["c2"]["chunks"][0]["cached"] is True
        assert printed["calls"]["c1"]["call_tags"] == [
            {"funnel_stage": "BOFU", "topic": "roi_financial_outcomes", "confidence": 0.9}
        ]
        assert printed["parse_failures"] == 0

    def test_tag_file_missing_call(self, config_file, tmp_path):
        transcripts = tmp_path / "transcripts.json"
        transcripts.write_text(json.dumps({"calls": {"c1": []}}))

        assert cli.main(["--config", config_file, "tag-file", str(transcripts), "--call", "zz"]) == 1

    def test_calibrate(self, config_file, tmp_path, capsys):
        samples = tmp_path / "samples.json"
        samples.write_text(json.dumps({"samples": [
            {"id": "s1", "chunk_text": "ROI 3x", "expected_funnel_stage": "BOFU",
             "expected_topic": "roi_financial_outcomes"},
            {"id": "s2", "chunk_text": "went live fast", "expected_funnel_stage": "BOFU",
             "expected_topic": "deployment_speed"},
        ]}))

        assert cli.main(["--config", config_file, "calibrate", str(samples)]) == 0

        printed = json.loads(capsys.readouterr().out)
        # s1 correct at 0.9; s2 wrong at 0.9 plus a miss at 0.0
        assert printed["report"]["sample_count"] == 3
        assert (tmp_path / "curve.json").exists()
