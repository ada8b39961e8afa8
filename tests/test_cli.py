import io
import json

import pytest
import yaml

from kure_gate.main import main


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    monkeypatch.delenv("KURE_GATE_CONFIG", raising=False)
    monkeypatch.setenv("KURE_GATE_LOG_LEVEL", "WARNING")


@pytest.fixture
def manifests(tmp_path, compliant_document, negative_document):
    good = tmp_path / "good.yaml"
    good.write_text(yaml.safe_dump(compliant_document))
    bad = tmp_path / "bad.yaml"
    bad.write_text(yaml.safe_dump(negative_document))
    return good, bad


class TestCli:

    def test_compliant_manifest_exits_zero(self, manifests, capsys):
        good, _ = manifests
        assert main([str(good)]) == 0
        assert "[PASS] Deployment/dev/pe-eng-petclinic-dev" in capsys.readouterr().out

    def test_policy_failure_exits_one(self, manifests, capsys):
        good, bad = manifests
        assert main([str(good), str(bad), "--format", "json"]) == 1

        report = json.loads(capsys.readouterr().out)
        assert [r["source"] for r in report["results"]] == [f"{good}#0", f"{bad}#0"]
        assert report["summary"]["errors"] == 16

    def test_directory_input(self, manifests):
        good, _ = manifests
        assert main([str(good.parent)]) == 1

    def test_unparseable_input_exits_two(self, tmp_path, manifests):
        broken = tmp_path / "broken.yaml"
        broken.write_text("kind: [unclosed\n")
        good, _ = manifests
        assert main([str(good), str(broken)]) == 2

    def test_missing_file_exits_two(self, tmp_path, manifests):
        good, _ = manifests
        assert main([str(good), str(tmp_path / "missing.yaml")]) == 2

    def test_disable_rules(self, manifests, capsys):
        _, bad = manifests
        disabled = [
            "image-no-latest-tag", "image-registry-allowed", "resources-requests-limits",
            "security-run-as-non-root", "security-seccomp-runtime-default", "security-read-only-root-fs",
            "security-drop-all-capabilities", "naming-convention", "labels-required",
        ]
        argv = [str(bad)]
        for rule_id in disabled:
            argv += ["--disable", rule_id]
        assert main(argv) == 0

    def test_unknown_disabled_rule_is_configuration_error(self, manifests):
        good, _ = manifests
        assert main([str(good), "--disable", "no-such-rule"]) == 2

    def test_config_file(self, tmp_path, manifests):
        good, _ = manifests
        config = tmp_path / "policy.yaml"
        config.write_text("requiredLabels: [cost-center]\n")
        assert main([str(good), "--config", str(config)]) == 1

    def test_invalid_config_file(self, tmp_path, manifests):
        good, _ = manifests
        config = tmp_path / "policy.yaml"
        config.write_text("unknownOption: true\n")
        assert main([str(good), "--config", str(config)]) == 2

    def test_stdin(self, monkeypatch, compliant_document, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO(yaml.safe_dump(compliant_document)))
        assert main(["-", "--format", "yaml"]) == 0
        report = yaml.safe_load(capsys.readouterr().out)
        assert report["results"][0]["source"] == "<stdin>#0"

    def test_list_rules(self, capsys):
        assert main(["--list-rules"]) == 0
        out = capsys.readouterr().out
        assert "image-no-latest-tag" in out
        assert len(out.strip().splitlines()) == 20

    def test_no_paths(self):
        assert main([]) == 2
