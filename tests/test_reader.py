"""Tests for reading structured trace logs."""

import logging

import pytest

from tlreport.reader import GLOG_LINE, StructuredLogReader, read_envelopes

HEADER = "V0806 12:34:56.789012 1234 torch/_dynamo/convert_frame.py:900] "


@pytest.fixture
def write_log(tmp_path):
  def _write(*lines):
    path = tmp_path / "trace.log"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path

  return _write


def test_glog_line_pattern():
  match = GLOG_LINE.match("[rank3]:I1231 01:02:03.000004 77 torch/x.py:5] {}")
  assert match.group("rank") == "3"
  assert match.group("level") == "I"
  assert match.group("month") == "12"
  assert match.group("day") == "31"
  assert match.group("thread") == "77"
  assert match.group("pathname") == "torch/x.py"
  assert match.group("lineno") == "5"
  assert match.group("body") == "{}"

  assert GLOG_LINE.match("plain text line") is None


def test_reads_header_fields(write_log):
  path = write_log(HEADER + '{"dynamo_start": {}, "frame_id": 0, "frame_compile_id": 1, "attempt": 0}')
  (envelope,) = list(read_envelopes(path, year=2024))

  assert envelope.kind == "dynamo_start"
  assert str(envelope.compile_id) == "0_1_0"
  assert envelope.rank is None
  assert envelope.timestamp == "2024-08-06T12:34:56.789012"
  assert envelope.thread == 1234
  assert envelope.pathname == "torch/_dynamo/convert_frame.py"
  assert envelope.lineno == 900


def test_rank_prefix(write_log):
  path = write_log("[rank2]:" + HEADER + '{"artifact": {"name": "a", "encoding": "string"}}')
  (envelope,) = list(read_envelopes(path, year=2024))
  assert envelope.rank == 2


def test_tab_indented_payload_lines(write_log):
  path = write_log(
    HEADER + '{"dynamo_output_graph": {}, "frame_id": 0, "frame_compile_id": 0, "has_payload": "abc"}',
    "\tclass GraphModule(torch.nn.Module):",
    "\t    def forward(self, x):",
    HEADER + '{"compilation_metrics": {}, "frame_id": 0, "frame_compile_id": 0}',
  )
  graph, metrics = list(read_envelopes(path, year=2024))

  assert graph.inline_payload == "class GraphModule(torch.nn.Module):\n    def forward(self, x):"
  assert metrics.inline_payload is None


def test_empty_payload_is_empty_string(write_log):
  path = write_log(HEADER + '{"dynamo_output_graph": {}, "has_payload": "abc"}')
  (envelope,) = list(read_envelopes(path, year=2024))
  assert envelope.inline_payload == ""


def test_string_table_resolves_stack_filenames(write_log):
  path = write_log(
    HEADER + '{"str": ["/home/user/train.py", 0]}',
    HEADER + '{"dynamo_start": {"stack": [{"filename": 0, "line": 3, "name": "main"}]}, "frame_id": 0, "frame_compile_id": 0}',
    HEADER + '{"guard_added": {"expr": "s0 > 1", "user_stack": [{"filename": 0, "line": 9, "name": "f"}]}}',
    HEADER + '{"stack": [{"filename": 0, "line": 4, "name": "g"}, {"filename": 5, "line": 1, "name": "h"}]}',
  )
  reader = StructuredLogReader(path, year=2024)
  envelopes = list(reader)

  assert reader.string_table == {0: "/home/user/train.py"}
  assert [e.kind for e in envelopes] == ["str", "dynamo_start", "guard_added", "stack"]
  assert envelopes[1].payload.stack[0].uninterned_filename == "/home/user/train.py"
  assert envelopes[2].payload.user_stack[0]["uninterned_filename"] == "/home/user/train.py"
  assert envelopes[3].stack[0].display_filename == "/home/user/train.py"
  assert envelopes[3].stack[1].display_filename == "(unknown)"


def test_malformed_lines_are_skipped(write_log, caplog):
  path = write_log(
    "not a log line",
    HEADER + "{not json",
    HEADER + "[1, 2]",
    HEADER + '{"dynamo_start": {}, "compilation_metrics": {}}',
    "\torphan payload line",
    "",
    HEADER + '{"some_new_kind": {}}',
    HEADER + '{"dynamo_guards": {}}',
  )
  reader = StructuredLogReader(path, year=2024)

  with caplog.at_level(logging.WARNING, logger="tlreport.reader"):
    envelopes = list(reader)

  assert [e.kind for e in envelopes] == [None, "dynamo_guards"]
  assert reader.stats.malformed == 4
  assert reader.stats.unknown == 1
  assert reader.stats.envelopes == 2
  assert reader.stats.lines == 8
  assert "Skipped 4 malformed line(s)" in caplog.text


def test_year_defaults_to_current_year(write_log):
  from datetime import datetime

  path = write_log(HEADER + '{"dynamo_guards": {}}')
  (envelope,) = list(read_envelopes(path))
  assert envelope.timestamp.startswith(f"{datetime.now().year:04d}-08-06T")
