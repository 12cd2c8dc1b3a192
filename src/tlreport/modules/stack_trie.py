"""
Call-site trie of compilation entry stacks.

Every `dynamo_start` record carries the user stack that triggered the
compile. Stacks are stripped of the compiler's own entry frames, reversed so
the outermost frame comes first, and merged into a prefix trie. Identical
stacks end on the same node, which lists every compile id that started
there.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from ..classifier import Category
from ..compile_id import decode_compile_id, format_display_name
from ..models import CompilationMetricsPayload, decode_metadata
from ..templates import esc
from .base import IndexContribution, Module, ModuleOutput
from .compile_artifacts import eval_with_key_id

_CONVERT_FRAME = "torch/_dynamo/convert_frame.py"

# Compiler entry frames at the innermost end of a stack, matched exactly.
HARNESS_SUFFIXES: Tuple[Tuple[Tuple[str, str], ...], ...] = (
  (
    (_CONVERT_FRAME, "catch_errors"),
    (_CONVERT_FRAME, "_convert_frame"),
    (_CONVERT_FRAME, "_convert_frame_assert"),
  ),
  (
    (_CONVERT_FRAME, "__call__"),
    (_CONVERT_FRAME, "__call__"),
    (_CONVERT_FRAME, "__call__"),
  ),
)


class FrameKey(NamedTuple):
  filename: str
  line: int
  name: str
  loc: Optional[str]


def simplify_filename(filename: str) -> str:
  parts = filename.split("#link-tree/")
  return parts[1] if len(parts) > 1 else filename


def frame_key(frame: Any) -> FrameKey:
  if not isinstance(frame, dict):
    return FrameKey(str(frame), 0, "", None)
  filename = frame.get("uninterned_filename")
  if filename is None and isinstance(frame.get("filename"), str):
    filename = frame["filename"]
  line = frame.get("line")
  return FrameKey(
    filename=filename or "(unknown)",
    line=line if isinstance(line, int) else 0,
    name=str(frame.get("name") or ""),
    loc=frame.get("loc"),
  )


def strip_harness_suffixes(frames: List[FrameKey]) -> List[FrameKey]:
  """Drop each known compiler-entry suffix from the innermost end, in turn."""
  frames = list(frames)
  for target in HARNESS_SUFFIXES:
    size = len(target)
    if len(frames) < size:
      continue
    tail = frames[len(frames) - size:]
    if all(
      simplify_filename(frame.filename) == filename and frame.name == name
      for frame, (filename, name) in zip(tail, target)
    ):
      frames = frames[: len(frames) - size]
  return frames


class StackTrieNode:
  def __init__(self):
    self.children: Dict[FrameKey, StackTrieNode] = {}
    self.terminal: List[Optional[str]] = []

  def insert(self, frames: Iterable[FrameKey], compile_id: Optional[str]) -> None:
    node = self
    for key in frames:
      child = node.children.get(key)
      if child is None:
        child = node.children[key] = StackTrieNode()
      node = child
    node.terminal.append(compile_id)

  def insert_stack(self, stack: List[Any], compile_id: Optional[str]) -> None:
    frames = strip_harness_suffixes([frame_key(f) for f in stack])
    frames.reverse()
    self.insert(frames, compile_id)

  def is_empty(self) -> bool:
    return not self.children and not self.terminal


def compile_status(metrics: List[CompilationMetricsPayload]) -> str:
  """
  Status class for a compile id, by precedence error > empty > break > ok.
  """
  if not metrics:
    return "missing"
  if any(m.fail_type is not None for m in metrics):
    return "error"
  if any(m.graph_op_count == 0 for m in metrics):
    return "empty"
  if any(m.restart_reasons for m in metrics):
    return "break"
  return "ok"


def format_frame_html(frame: FrameKey) -> str:
  filename = simplify_filename(frame.filename)
  fx_id = eval_with_key_id(frame.filename)
  if fx_id is not None:
    return (
      f"<a href='dump_file/eval_with_key_{fx_id}.html#L{frame.line}'>"
      f"{esc(filename)}:{frame.line}</a> in {esc(frame.name)}"
    )
  loc = f"<br>&nbsp;&nbsp;&nbsp;&nbsp;{esc(frame.loc)}" if frame.loc else ""
  return f"{esc(filename)}:{frame.line} in {esc(frame.name)}{loc}"


class TrieRenderer:
  def __init__(self, metrics_index: Optional[Dict[str, List[CompilationMetricsPayload]]] = None):
    self.metrics_index = metrics_index

  def _terminal_links(self, terminal: List[Optional[str]]) -> str:
    links = []
    for cid in terminal:
      decoded = decode_compile_id(cid)
      if cid is None or decoded is None or decoded.is_empty:
        links.append("(unknown) ")
        continue
      if self.metrics_index is None:
        status = "missing"
      else:
        status = compile_status(self.metrics_index.get(cid, []))
      links.append(f"<a href='#{esc(cid)}' class='status-{status}'>{esc(format_display_name(cid))}</a> ")
    return "".join(links)

  def render(self, trie: StackTrieNode, caption: str, open_: bool = True) -> str:
    out = [f"<details{' open' if open_ else ''}><summary>{esc(caption)}</summary>"]
    out.append("<div class='stack-trie'><ul>")
    if trie.terminal:
      out.append(f"<li>{self._terminal_links(trie.terminal)}(no frames)</li>")
    self._render_children(trie, out)
    out.append("</ul></div></details>")
    return "".join(out)

  def _render_children(self, root: StackTrieNode, out: List[str]) -> None:
    # Explicit work list: stacks can be deeper than the interpreter's recursion limit.
    work: List[Tuple[str, Any]] = [("node", root)]
    while work:
      action, value = work.pop()
      if action == "text":
        out.append(value)
        continue

      parent: StackTrieNode = value
      branching = len(parent.children) > 1
      items: List[Tuple[str, Any]] = []
      for key, child in parent.children.items():
        star = self._terminal_links(child.terminal)
        frame_html = format_frame_html(key)
        if branching:
          items.append((
            "text",
            f"<li><span onclick='toggleList(this)' class='collapsible open'></span>{star}{frame_html}<ul>",
          ))
          items.append(("node", child))
          items.append(("text", "</ul></li>"))
        else:
          # Single child: inline it at the parent's level.
          items.append(("text", f"<li>{star}{frame_html}</li>"))
          items.append(("node", child))
      work.extend(reversed(items))


def build_metrics_index(records) -> Dict[str, List[CompilationMetricsPayload]]:
  index: Dict[str, List[CompilationMetricsPayload]] = {}
  for record in records:
    if record.kind != "compilation_metrics" or record.compile_id is None:
      continue
    index.setdefault(record.compile_id, []).append(
      decode_metadata(CompilationMetricsPayload, record.metadata)
    )
  return index


def build_tries(records) -> Tuple[StackTrieNode, StackTrieNode]:
  """Return (trie of dynamo_start stacks, trie of bare stack records)."""
  known = StackTrieNode()
  unknown = StackTrieNode()
  for record in records:
    if record.kind == "dynamo_start":
      stack = record.metadata.get("stack") if isinstance(record.metadata, dict) else None
      if isinstance(stack, list):
        known.insert_stack(stack, record.compile_id)
    elif record.kind == "stack" and isinstance(record.metadata, list):
      unknown.insert_stack(record.metadata, record.compile_id)
  return known, unknown


class StackTrieModule(Module):
  id = "stack_trie"
  name = "Stack Trie"
  subscriptions = frozenset({Category.COMPILATION_METRICS})

  def render(self, ctx) -> ModuleOutput:
    output = ModuleOutput()
    records = ctx.read(Category.COMPILATION_METRICS)
    known, unknown = build_tries(records)
    if known.is_empty() and unknown.is_empty():
      return output

    renderer = TrieRenderer(build_metrics_index(records))
    parts = []
    if not known.is_empty():
      parts.append(renderer.render(known, "Stack Trie"))
    if not unknown.is_empty():
      parts.append(renderer.render(unknown, "Unknown Stacks", open_=False))
    output.index_contribution = IndexContribution("Stack Trie", "".join(parts))
    return output
