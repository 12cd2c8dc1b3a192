"""Tests for the tlreport command line."""

import json

import pytest

from tlreport.__main__ import main


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run each command from an empty directory with no TLREPORT_* settings."""
    monkeypatch.chdir(tmp_path)
    for name in ("TLREPORT_PLAIN_TEXT", "TLREPORT_EXPORT_MODE", "TLREPORT_PARALLEL", "TLREPORT_CUSTOM_HEADER_HTML"):
        monkeypatch.delenv(name, raising=False)


def test_main_without_command(capsys):
    """Test that a missing command prints usage and exits 1."""
    with pytest.raises(SystemExit) as exc_info:
        main([])

    assert exc_info.value.code == 1
    assert "Usage: tlreport" in capsys.readouterr().err


def test_main_invalid_command(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["publish"])

    assert exc_info.value.code == 1
    assert "report" in capsys.readouterr().err


class TestReportCommand:
    """Tests for `tlreport report`."""

    def test_report_success(self, sample_log, tmp_path, capsys):
        out = tmp_path / "out"
        with pytest.raises(SystemExit) as exc_info:
            main(["report", str(sample_log), "-o", str(out)])

        assert exc_info.value.code == 0
        assert "Report written to" in capsys.readouterr().out
        assert (out / "index.html").is_file()

    def test_report_flags(self, sample_log, tmp_path):
        out = tmp_path / "out"
        inter = tmp_path / "inter"
        header = tmp_path / "header.html"
        header.write_text("<div id='custom'>CI run</div>")

        with pytest.raises(SystemExit) as exc_info:
            main([
                "report", str(sample_log), "-o", str(out),
                "--intermediate-dir", str(inter),
                "--plain-text", "--parallel",
                "--custom-header-html", str(header),
            ])

        assert exc_info.value.code == 0
        assert (inter / "manifest.json").is_file()
        assert "<div id='custom'>CI run</div>" in (out / "index.html").read_text()
        assert any(p.suffix == ".txt" and p.name.startswith("inductor_output_code") for p in (out / "0_0_0").iterdir())

    def test_report_export_mode(self, sample_log, tmp_path):
        out = tmp_path / "out"
        with pytest.raises(SystemExit):
            main(["report", str(sample_log), "-o", str(out), "--export"])
        assert "Export Analysis" in (out / "index.html").read_text()

    def test_report_missing_log(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["report", str(tmp_path / "missing.log"), "-o", str(tmp_path / "out")])

        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_report_invalid_config(self, sample_log, tmp_path, capsys):
        config = tmp_path / "bad.yaml"
        config.write_text("tlreport:\n  unknown_option: 1\n")

        with pytest.raises(SystemExit) as exc_info:
            main(["report", str(sample_log), "-o", str(tmp_path / "out"), "--config", str(config)])

        assert exc_info.value.code == 1
        assert "Unknown field" in capsys.readouterr().err

    def test_report_requires_output(self, sample_log):
        with pytest.raises(SystemExit) as exc_info:
            main(["report", str(sample_log)])
        assert exc_info.value.code == 2


class TestIngestAndRender:
    """Tests for running the two stages separately."""

    def test_ingest_then_render(self, sample_log, tmp_path, capsys):
        inter = tmp_path / "inter"
        with pytest.raises(SystemExit) as exc_info:
            main(["ingest", str(sample_log), "-o", str(inter)])
        assert exc_info.value.code == 0
        assert "Ingested 9 envelope(s)" in capsys.readouterr().out

        manifest = json.loads((inter / "manifest.json").read_text())
        assert manifest["compile_ids"] == ["0_0_0", "1_0_0"]

        out = tmp_path / "out"
        with pytest.raises(SystemExit) as exc_info:
            main(["render", str(inter), "-o", str(out)])
        assert exc_info.value.code == 0
        assert (out / "compile_directory.json").is_file()

    def test_render_without_manifest(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["render", str(tmp_path), "-o", str(tmp_path / "out")])

        assert exc_info.value.code == 1
        assert "manifest.json" in capsys.readouterr().err

    def test_render_corrupt_trace_spans(self, sample_log, tmp_path, capsys):
        inter = tmp_path / "inter"
        with pytest.raises(SystemExit):
            main(["ingest", str(sample_log), "-o", str(inter)])
        (inter / "chromium_events.json").write_text("{}")

        with pytest.raises(SystemExit) as exc_info:
            main(["render", str(inter), "-o", str(tmp_path / "out")])

        # The trace module fails alone; the rest of the report is still written.
        assert exc_info.value.code == 0
        assert "Chromium Trace" in capsys.readouterr().err

    def test_render_corrupt_manifest(self, tmp_path, capsys):
        (tmp_path / "manifest.json").write_text('{"version": "2.0"}')

        with pytest.raises(SystemExit) as exc_info:
            main(["render", str(tmp_path), "-o", str(tmp_path / "out")])

        assert exc_info.value.code == 1
        assert "corrupt intermediate file" in capsys.readouterr().err
