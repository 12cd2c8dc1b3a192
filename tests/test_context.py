"""Tests for the read-only module context."""

import pytest

from tlreport.classifier import Category
from tlreport.modules.context import IntermediateReadError


def test_read_missing_category_is_empty(make_context):
  ctx = make_context()
  assert ctx.read(Category.GRAPHS) == []
  assert ctx.read_trace_spans() == []
  assert not ctx.has_records(Category.GRAPHS)


def test_read_skips_blank_lines(intermediate_dir, make_context, make_record, write_records):
  path = write_records(Category.GUARDS, [make_record("dynamo_guards")])
  with path.open("a") as f:
    f.write("\n   \n")
  write_records(Category.GUARDS, [make_record("guard_added", compile_id="1_0")])

  records = make_context().read(Category.GUARDS)
  assert [r.kind for r in records] == ["dynamo_guards", "guard_added"]


def test_read_invalid_line_reports_position(intermediate_dir, make_context, make_record, write_records):
  path = write_records(Category.GRAPHS, [make_record("dynamo_output_graph")])
  with path.open("a") as f:
    f.write("{broken\n")

  with pytest.raises(IntermediateReadError) as excinfo:
    make_context().read(Category.GRAPHS)
  assert excinfo.value.lineno == 2
  assert excinfo.value.path == path
  assert "graphs.jsonl:2" in str(excinfo.value)


def test_filters_and_grouping(make_context, make_record, write_records):
  write_records(Category.COMPILATION_METRICS, [
    make_record("dynamo_start", compile_id="1_0"),
    make_record("compilation_metrics", compile_id="1_0"),
    make_record("dynamo_start", compile_id="0_0"),
    make_record("stack", compile_id=None, metadata=[]),
  ])
  ctx = make_context()

  assert len(ctx.records_for_compile(Category.COMPILATION_METRICS, "1_0")) == 2
  assert [r.compile_id for r in ctx.records_by_kind(Category.COMPILATION_METRICS, "dynamo_start")] == ["1_0", "0_0"]

  grouped = ctx.group_by_compile_id(Category.COMPILATION_METRICS)
  assert list(grouped) == ["1_0", "0_0", None]
  assert ctx.has_records(Category.COMPILATION_METRICS)


def test_read_trace_spans(intermediate_dir, make_context):
  (intermediate_dir / "chromium_events.json").write_text('[{"name": "a"}]')
  assert make_context().read_trace_spans() == [{"name": "a"}]


@pytest.mark.parametrize("content", ["[{", '{"not": "a list"}'])
def test_read_trace_spans_rejects_bad_file(intermediate_dir, make_context, content):
  (intermediate_dir / "chromium_events.json").write_text(content)
  with pytest.raises(IntermediateReadError):
    make_context().read_trace_spans()
