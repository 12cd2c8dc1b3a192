import json

import pytest

from tlreport.config_loader import ReportConfig
from tlreport.models import Manifest
from tlreport.modules.context import ModuleContext


def _make_record(kind, compile_id="0_0", metadata=None, payload=None, rank=0):
  """Build one intermediate record dict in the on-disk shape."""
  record = {
    "type": kind,
    "compile_id": compile_id,
    "rank": rank,
    "timestamp": "2024-08-06T12:00:00.000000",
    "thread": 1,
    "pathname": "torch/_dynamo/convert_frame.py",
    "lineno": 1,
    "metadata": {} if metadata is None else metadata,
  }
  if payload is not None:
    record["payload"] = payload
  return record


def _make_frame(filename, line, name, loc=None):
  result = {"filename": 0, "uninterned_filename": filename, "line": line, "name": name}
  if loc is not None:
    result["loc"] = loc
  return result


@pytest.fixture
def intermediate_dir(tmp_path):
  path = tmp_path / "intermediate"
  path.mkdir()
  return path


@pytest.fixture
def write_records(intermediate_dir):
  """Return a helper that writes record dicts as JSON lines for a category."""

  def _write(category, records):
    path = intermediate_dir / category.filename
    with path.open("a", encoding="utf-8") as f:
      for record in records:
        f.write(json.dumps(record) + "\n")
    return path

  return _write


@pytest.fixture
def make_context(intermediate_dir, tmp_path):
  """Return a helper that builds a ModuleContext over the intermediate dir."""

  def _make(config=None, compile_ids=None):
    files = sorted(p.name for p in intermediate_dir.iterdir() if p.stat().st_size > 0)
    manifest = Manifest(
      generated_at="2024-01-01T00:00:00+00:00",
      source_file="test.log",
      compile_ids=list(compile_ids or []),
      files=files,
    )
    return ModuleContext(intermediate_dir, tmp_path / "out", manifest, config or ReportConfig())

  return _make


@pytest.fixture
def make_record():
  return _make_record


@pytest.fixture
def make_frame():
  return _make_frame


SAMPLE_LOG_LINES = [
  'V0806 12:00:00.000001 100 torch/_logging/structured.py:22] {"str": ["/workspace/train.py", 0]}',
  'V0806 12:00:00.000002 100 torch/_logging/structured.py:22] {"str": ["torch/_dynamo/convert_frame.py", 1]}',
  'V0806 12:00:00.000010 100 torch/_dynamo/convert_frame.py:900] {"dynamo_start": {"stack": ['
  '{"line": 40, "name": "<module>", "filename": 0}, {"line": 12, "name": "train_step", "filename": 0}, '
  '{"line": 1, "name": "__call__", "filename": 1}, {"line": 2, "name": "__call__", "filename": 1}, '
  '{"line": 3, "name": "__call__", "filename": 1}]}, "frame_id": 0, "frame_compile_id": 0, "attempt": 0}',
  'V0806 12:00:00.000020 100 torch/_dynamo/output_graph.py:1300] {"dynamo_output_graph": {"sizes": {"l_x_": [4]}}, '
  '"frame_id": 0, "frame_compile_id": 0, "attempt": 0, "has_payload": "d41d8cd9"}',
  "\tclass GraphModule(torch.nn.Module):",
  "\t    def forward(self, L_x_: \"f32[4]\"):",
  'V0806 12:00:00.000030 100 torch/_inductor/graph.py:1800] {"inductor_output_code": {"filename": "/tmp/ti/cq/cqabc.py"}, '
  '"frame_id": 0, "frame_compile_id": 0, "attempt": 0, "has_payload": "e1"}',
  "\tdef call(args):",
  "\t    return (buf0, )",
  'V0806 12:00:00.000040 100 torch/_dynamo/guards.py:2100] {"dynamo_guards": {}, "frame_id": 0, "frame_compile_id": 0, '
  '"attempt": 0, "has_payload": "f2"}',
  '\t[{"code": "L[\'x\'].size()[0] == 4", "type": "TENSOR_MATCH"}]',
  'V0806 12:00:00.000050 100 torch/_dynamo/utils.py:700] {"chromium_event": {}, "has_payload": "a1"}',
  '\t{"name": "dynamo", "ph": "B", "ts": 1, "pid": 0, "tid": 0}',
  'V0806 12:00:00.000060 100 torch/_inductor/codecache.py:1200] {"artifact": {"name": "fx_graph_cache_miss", '
  '"encoding": "json"}, "frame_id": 0, "frame_compile_id": 0, "attempt": 0, "has_payload": "b2"}',
  '\t{"key": "f123"}',
  'V0806 12:00:00.000070 100 torch/_dynamo/utils.py:800] {"compilation_metrics": {"co_name": "train_step", '
  '"co_filename": "/workspace/train.py", "graph_op_count": 3, "fail_type": null}, "frame_id": 0, '
  '"frame_compile_id": 0, "attempt": 0}',
  'V0806 12:00:01.000000 100 torch/_dynamo/convert_frame.py:900] {"dynamo_start": {"stack": ['
  '{"line": 40, "name": "<module>", "filename": 0}, {"line": 20, "name": "eval_step", "filename": 0}]}, '
  '"frame_id": 1, "frame_compile_id": 0, "attempt": 0}',
  'V0806 12:00:01.000010 100 torch/_dynamo/utils.py:800] {"compilation_metrics": {"co_name": "eval_step", '
  '"fail_type": "Unsupported", "fail_reason": "call_function <lambda>"}, "frame_id": 1, "frame_compile_id": 0, '
  '"attempt": 0}',
  "this line is not part of the log format",
]


@pytest.fixture
def sample_log(tmp_path):
  """A small trace log covering two compiles, one of them failing."""
  path = tmp_path / "dedicated_log_torch_trace.log"
  path.write_text("\n".join(SAMPLE_LOG_LINES) + "\n", encoding="utf-8")
  return path
