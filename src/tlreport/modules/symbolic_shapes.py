"""
Symbolic guard pages with reconstructed expression trees.

`expression_created` records arrive flat, each naming its argument nodes by
id. The tree under a guard's `expr_node_id` is rebuilt from that table.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..classifier import Category
from ..models import ExpressionCreatedPayload, SymbolicGuardPayload, decode_metadata
from ..templates import esc, page, render_frames
from .base import DirectoryEntry, Module, ModuleOutput, unit_dir

MAX_TREE_DEPTH = 20

GUARD_KINDS = ("guard_added", "propagate_real_tensors_provenance")


@dataclass
class ExpressionInfo:
  node_id: int
  result: Optional[str] = None
  method: Optional[str] = None
  arguments: List[str] = field(default_factory=list)
  argument_ids: List[int] = field(default_factory=list)


def build_expression_index(records) -> Dict[int, ExpressionInfo]:
  index: Dict[int, ExpressionInfo] = {}
  for record in records:
    if record.kind != "expression_created":
      continue
    meta = decode_metadata(ExpressionCreatedPayload, record.metadata)
    if meta.node_id is None:
      continue
    index[meta.node_id] = ExpressionInfo(
      node_id=meta.node_id,
      result=meta.result,
      method=meta.method,
      arguments=list(meta.arguments),
      argument_ids=list(meta.argument_ids),
    )
  return index


def render_expression_tree(
  node_id: int,
  index: Dict[int, ExpressionInfo],
  depth: int = 0,
  visited: Optional[Set[int]] = None,
) -> str:
  """
  Render the expression rooted at node_id as nested lists.

  Each node is expanded at most once; later occurrences become a
  back-reference. Nesting deeper than MAX_TREE_DEPTH is cut off.
  """
  if visited is None:
    visited = set()

  if depth > MAX_TREE_DEPTH:
    return '<li class="placeholder">... (max depth)</li>'

  info = index.get(node_id)
  if info is None:
    return f'<li class="placeholder">Node {node_id} (not found)</li>'

  if node_id in visited:
    return f'<li class="placeholder">Node {node_id} (see above)</li>'
  visited.add(node_id)

  label = f"<strong>{esc(info.result)}</strong>" if info.result else f"Node {node_id}"
  if info.method:
    label += f" ({esc(info.method)})"
  if info.arguments:
    label += "<br>Args: " + ", ".join(esc(a) for a in info.arguments)

  children = "".join(
    render_expression_tree(arg_id, index, depth + 1, visited) for arg_id in info.argument_ids
  )
  if children:
    return f"<li>{label}<ul>{children}</ul></li>"
  return f"<li>{label}</li>"


def render_guard_page(kind: str, meta: SymbolicGuardPayload, index: Dict[int, ExpressionInfo]) -> str:
  parts = []
  if meta.expr is not None:
    parts.append(f"<h2>Expression</h2><pre>{esc(meta.expr)}</pre>")

  parts.append("<details open><summary>User Stack</summary>")
  parts.append(render_frames(meta.user_stack))
  parts.append("</details>")

  parts.append("<details><summary>Framework Stack</summary>")
  parts.append(render_frames(meta.stack))
  parts.append("</details>")

  if meta.expr_node_id is not None:
    tree = render_expression_tree(meta.expr_node_id, index)
    parts.append(f'<details open><summary>Expression Tree</summary><div class="expr-tree"><ul>{tree}</ul></div></details>')

  if meta.frame_locals is not None:
    formatted = json.dumps(meta.frame_locals, indent=2, default=str)
    parts.append(f"<details><summary>Frame Locals</summary><pre>{esc(formatted)}</pre></details>")

  return page(f"Symbolic Guard Information - {kind}", "\n".join(parts))


class SymbolicShapesModule(Module):
  id = "symbolic_shapes"
  name = "Symbolic Shapes"
  subscriptions = frozenset({Category.GUARDS})

  def render(self, ctx) -> ModuleOutput:
    output = ModuleOutput()
    records = ctx.read(Category.GUARDS)
    index = build_expression_index(records)

    count = 0
    for record in records:
      if record.kind not in GUARD_KINDS:
        continue
      meta = decode_metadata(SymbolicGuardPayload, record.metadata)
      filename = f"symbolic_guard_information_{count}.html"
      path = f"{unit_dir(record.compile_id)}/{filename}"
      output.add_file(path, render_guard_page(record.kind, meta, index))
      output.add_entry(record.compile_id, DirectoryEntry(filename, path))
      count += 1
    return output
