"""Tests for the chromium trace export."""

import json

from tlreport.modules.chromium_trace import TRACE_FILENAME, ChromiumTraceModule


def test_spans_are_written_as_json_array(intermediate_dir, make_context):
  spans = [{"name": "dynamo", "ph": "B", "ts": 1}, {"name": "dynamo", "ph": "E", "ts": 2}]
  (intermediate_dir / "chromium_events.json").write_text(json.dumps(spans))

  output = ChromiumTraceModule().render(make_context())

  files = dict(output.files)
  assert json.loads(files[TRACE_FILENAME]) == spans
  assert output.directory_entries["__global__"][0].url == TRACE_FILENAME
  assert "2 event(s)" in output.index_contribution.html


def test_no_spans_no_output(intermediate_dir, make_context):
  (intermediate_dir / "chromium_events.json").write_text("[]")
  output = ChromiumTraceModule().render(make_context())
  assert output.files == []
  assert output.index_contribution is None
