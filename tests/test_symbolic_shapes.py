"""Tests for symbolic guard pages and expression tree reconstruction."""

from tlreport.classifier import Category
from tlreport.models import NormalizedRecord
from tlreport.modules.symbolic_shapes import (
  MAX_TREE_DEPTH,
  ExpressionInfo,
  SymbolicShapesModule,
  build_expression_index,
  render_expression_tree,
)


def _index(*infos):
  return {info.node_id: info for info in infos}


def test_cyclic_expressions_render_once():
  """A 1 -> 2 -> 1 cycle terminates with a back-reference."""
  index = _index(
    ExpressionInfo(1, result="s0 + s1", method="add", argument_ids=[2]),
    ExpressionInfo(2, result="s1", argument_ids=[1]),
  )
  html = render_expression_tree(1, index)

  assert html.count("<strong>s0 + s1</strong>") == 1
  assert html.count("<strong>s1</strong>") == 1
  assert "Node 1 (see above)" in html


def test_shared_subexpression_expands_once():
  index = _index(
    ExpressionInfo(1, result="a * a", argument_ids=[2, 2]),
    ExpressionInfo(2, result="a"),
  )
  html = render_expression_tree(1, index)
  assert html.count("<strong>a</strong>") == 1
  assert "Node 2 (see above)" in html


def test_missing_node_is_marked():
  index = _index(ExpressionInfo(1, result="s0", argument_ids=[99]))
  assert "Node 99 (not found)" in render_expression_tree(1, index)
  assert "Node 5 (not found)" in render_expression_tree(5, {})


def test_depth_is_bounded():
  chain = [ExpressionInfo(i, result=f"e{i}", argument_ids=[i + 1]) for i in range(MAX_TREE_DEPTH + 10)]
  html = render_expression_tree(0, _index(*chain))

  assert f"<strong>e{MAX_TREE_DEPTH}</strong>" in html
  assert f"<strong>e{MAX_TREE_DEPTH + 1}</strong>" not in html
  assert "... (max depth)" in html


def test_labels_are_escaped():
  index = _index(ExpressionInfo(1, result="x<y", method="lt", arguments=["<a>"]))
  html = render_expression_tree(1, index)
  assert "x&lt;y" in html
  assert "Args: &lt;a&gt;" in html


def test_build_expression_index_accepts_both_id_names(make_record):
  records = [
    NormalizedRecord.model_validate(make_record("expression_created", metadata={"id": 1, "result": "s0"})),
    NormalizedRecord.model_validate(make_record("expression_created", metadata={"result_id": 2, "result": "s1"})),
    NormalizedRecord.model_validate(make_record("expression_created", metadata={"result": "no id"})),
    NormalizedRecord.model_validate(make_record("guard_added", metadata={"expr": "s0 > 1"})),
  ]
  index = build_expression_index(records)
  assert sorted(index) == [1, 2]
  assert index[2].result == "s1"


def test_module_writes_numbered_guard_pages(make_context, make_record, make_frame, write_records):
  write_records(Category.GUARDS, [
    make_record("expression_created", compile_id="0_0", metadata={"result_id": 1, "result": "s0 > 2"}),
    make_record("guard_added", compile_id="0_0", metadata={
      "expr": "s0 > 2",
      "expr_node_id": 1,
      "user_stack": [make_frame("train.py", 3, "main")],
      "frame_locals": {"x": "Tensor(s0)"},
    }),
    make_record("propagate_real_tensors_provenance", compile_id="1_0", metadata={"expr": "u0 == 4"}),
    make_record("dynamo_guards", compile_id="0_0"),
  ])

  output = SymbolicShapesModule().render(make_context())
  files = dict(output.files)

  assert sorted(files) == [
    "0_0/symbolic_guard_information_0.html",
    "1_0/symbolic_guard_information_1.html",
  ]
  first = files["0_0/symbolic_guard_information_0.html"]
  assert "<strong>s0 &gt; 2</strong>" in first
  assert "train.py:3 in main" in first
  assert "Tensor(s0)" in first
  second = files["1_0/symbolic_guard_information_1.html"]
  assert "(no stack)" in second
  assert [e.name for e in output.directory_entries["1_0"]] == ["symbolic_guard_information_1.html"]
