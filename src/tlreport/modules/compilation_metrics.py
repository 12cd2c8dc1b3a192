"""
Per-compilation metrics pages and the global failures summary.

Three metric kinds are rendered: forward `compilation_metrics`,
`bwd_compilation_metrics` and `aot_autograd_backward_compilation_metrics`.
Any of them with a `fail_type` lands in `failures_and_restarts.html`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..classifier import Category
from ..models import (
  AotAutogradBackwardCompilationMetricsPayload,
  BwdCompilationMetricsPayload,
  CompilationMetricsPayload,
  SymbolicShapeSpecializationPayload,
  decode_metadata,
)
from ..templates import esc, page, render_frames, table
from .base import DirectoryEntry, IndexContribution, Module, ModuleOutput, unit_dir

FAILURES_FILENAME = "failures_and_restarts.html"


@dataclass
class FailureEntry:
  compile_id: Optional[str]
  kind: str
  fail_type: str
  fail_reason: Optional[str] = None
  co_name: Optional[str] = None
  co_filename: Optional[str] = None


def _seconds(value: Optional[float]) -> Optional[str]:
  return None if value is None else f"{value:.3f}s"


def _info_table(rows: Iterable[Tuple[str, Any]]) -> str:
  """Two-column table; rows whose value is None are left out."""
  kept = [(esc(label), esc(value)) for label, value in rows if value is not None]
  if not kept:
    return '<p class="placeholder">(none recorded)</p>'
  return "<table>" + "".join(f"<tr><th>{k}</th><td>{v}</td></tr>" for k, v in kept) + "</table>"


def _failure_section(fail_type: Optional[str], fail_reason: Optional[str]) -> str:
  if fail_type is None:
    return '<p class="status-ok">Compilation successful</p>'
  reason = f"<pre>{esc(fail_reason)}</pre>" if fail_reason else ""
  return f'<p class="status-error">Compilation failed: {esc(fail_type)}</p>{reason}'


def render_metrics_page(
  compile_id: Optional[str],
  metrics: CompilationMetricsPayload,
  stack: Optional[List[Any]],
  specializations: List[SymbolicShapeSpecializationPayload],
) -> str:
  parts = [_failure_section(metrics.fail_type, metrics.fail_reason)]

  parts.append("<h2>Basic Information</h2>")
  parts.append(_info_table([
    ("Function Name", metrics.co_name),
    ("Filename", metrics.co_filename),
    ("First Line", metrics.co_firstlineno),
    ("Cache Size", metrics.cache_size),
    ("Accumulated Cache Size", metrics.accumulated_cache_size),
  ]))

  parts.append("<h2>Timing</h2>")
  parts.append(_info_table([
    ("Total Compile Time", _seconds(metrics.entire_frame_compile_time_s)),
    ("Backend Compile Time", _seconds(metrics.backend_compile_time_s)),
    ("Inductor Compile Time", _seconds(metrics.inductor_compile_time_s)),
    ("Code Gen Time", _seconds(metrics.code_gen_time_s)),
    ("Dynamo Time Before Restart", _seconds(metrics.dynamo_time_before_restart_s)),
  ]))

  parts.append("<h2>Graph Statistics</h2>")
  parts.append(_info_table([
    ("Graph Op Count", metrics.graph_op_count),
    ("Graph Node Count", metrics.graph_node_count),
    ("Graph Input Count", metrics.graph_input_count),
    ("Guard Count", metrics.guard_count),
    ("Shape Env Guard Count", metrics.shape_env_guard_count),
  ]))

  if metrics.fail_type and metrics.fail_user_frame_filename:
    parts.append("<h2>User Frame</h2>")
    parts.append(
      f"<p>{esc(metrics.fail_user_frame_filename)}:{esc(metrics.fail_user_frame_lineno or 0)}</p>"
    )

  if metrics.restart_reasons:
    items = "".join(f"<li>{esc(reason)}</li>" for reason in metrics.restart_reasons)
    parts.append(f'<h2 class="status-break">Restart Reasons</h2><ul>{items}</ul>')

  for title, ops in (
    ("Non-Compliant Ops", metrics.non_compliant_ops),
    ("Compliant Custom Ops", metrics.compliant_custom_ops),
  ):
    if ops:
      items = "".join(f"<li><code>{esc(op)}</code></li>" for op in ops)
      parts.append(f"<h2>{title}</h2><ul>{items}</ul>")

  if specializations:
    rows = [
      (
        esc(spec.symbol),
        esc(spec.value),
        esc(spec.reason),
        esc(", ".join(str(s) for s in spec.sources)),
      )
      for spec in specializations
    ]
    parts.append("<h2>Symbolic Shape Specializations</h2>")
    parts.append(table(["Symbol", "Value", "Reason", "Sources"], rows))

  if stack is not None:
    parts.append("<details><summary>Compilation Stack</summary>")
    parts.append(render_frames(stack))
    parts.append("</details>")

  return page(f"Compilation Metrics {compile_id or 'unknown'}", "\n".join(parts))


def render_bwd_page(compile_id: Optional[str], metrics: BwdCompilationMetricsPayload) -> str:
  body = _failure_section(metrics.fail_type, metrics.fail_reason) + _info_table([
    ("Inductor Compile Time", _seconds(metrics.inductor_compile_time_s)),
    ("Code Gen Time", _seconds(metrics.code_gen_time_s)),
  ])
  return page(f"Backward Compilation Metrics {compile_id or 'unknown'}", body)


def render_aot_backward_page(
  compile_id: Optional[str], metrics: AotAutogradBackwardCompilationMetricsPayload
) -> str:
  body = _failure_section(metrics.fail_type, metrics.fail_reason) + _info_table([
    ("Start Time", metrics.start_time),
    ("Elapsed Time", _seconds(metrics.elapsed_time)),
  ])
  return page(f"AOT Autograd Backward Compilation Metrics {compile_id or 'unknown'}", body)


def render_failures_page(failures: List[FailureEntry], restarts: List[Tuple[Optional[str], List[str]]]) -> str:
  rows = []
  for failure in failures:
    label = esc(failure.compile_id or "unknown")
    rows.append((
      f'<a href="index.html#{label}">{label}</a>',
      esc(failure.kind),
      esc(failure.fail_type),
      f"<pre>{esc(failure.fail_reason)}</pre>" if failure.fail_reason else "",
      esc(failure.co_name),
      esc(failure.co_filename),
    ))
  body = "<h2>Failures</h2>" + table(
    ["Compile Id", "Metrics", "Failure Type", "Reason", "Function", "Filename"], rows
  )

  if restarts:
    restart_rows = [
      (esc(cid or "unknown"), "<br>".join(esc(r) for r in reasons)) for cid, reasons in restarts
    ]
    body += "<h2>Restarts</h2>" + table(["Compile Id", "Restart Reasons"], restart_rows)

  return page("Failures and Restarts", body)


class CompilationMetricsModule(Module):
  id = "compilation_metrics"
  name = "Compilation Metrics"
  subscriptions = frozenset({Category.COMPILATION_METRICS, Category.GUARDS})

  def render(self, ctx) -> ModuleOutput:
    output = ModuleOutput()
    failures: List[FailureEntry] = []
    restarts: List[Tuple[Optional[str], List[str]]] = []

    records = ctx.read(Category.COMPILATION_METRICS)
    stacks = self._stack_index(records)
    specializations = self._specialization_index(ctx)

    for record in records:
      cid = record.compile_id

      if record.kind == "compilation_metrics":
        metrics = decode_metadata(CompilationMetricsPayload, record.metadata)
        if metrics.fail_type is not None:
          failures.append(FailureEntry(
            cid, record.kind, metrics.fail_type, metrics.fail_reason, metrics.co_name, metrics.co_filename
          ))
        if metrics.restart_reasons:
          restarts.append((cid, list(metrics.restart_reasons)))
        content = render_metrics_page(cid, metrics, stacks.get(cid), specializations.get(cid, []))

      elif record.kind == "bwd_compilation_metrics":
        metrics = decode_metadata(BwdCompilationMetricsPayload, record.metadata)
        if metrics.fail_type is not None:
          failures.append(FailureEntry(cid, record.kind, metrics.fail_type, metrics.fail_reason))
        content = render_bwd_page(cid, metrics)

      elif record.kind == "aot_autograd_backward_compilation_metrics":
        metrics = decode_metadata(AotAutogradBackwardCompilationMetricsPayload, record.metadata)
        if metrics.fail_type is not None:
          failures.append(FailureEntry(cid, record.kind, metrics.fail_type, metrics.fail_reason))
        content = render_aot_backward_page(cid, metrics)

      else:
        continue

      filename = f"{record.kind}.html"
      path = f"{unit_dir(cid)}/{filename}"
      output.add_file(path, content)
      output.add_entry(cid, DirectoryEntry(filename, path))

    if failures:
      output.add_file(FAILURES_FILENAME, render_failures_page(failures, restarts))
      output.index_contribution = IndexContribution(
        "Failures and Restarts",
        f'<div class="failures-summary"><span>{len(failures)} failure(s)</span> '
        f'<a href="{FAILURES_FILENAME}">View Details</a></div>',
      )
    return output

  def _stack_index(self, records) -> Dict[Optional[str], List[Any]]:
    index: Dict[Optional[str], List[Any]] = {}
    for record in records:
      if record.kind != "dynamo_start" or record.compile_id is None:
        continue
      if isinstance(record.metadata, dict) and isinstance(record.metadata.get("stack"), list):
        index[record.compile_id] = record.metadata["stack"]
    return index

  def _specialization_index(self, ctx) -> Dict[Optional[str], List[SymbolicShapeSpecializationPayload]]:
    index: Dict[Optional[str], List[SymbolicShapeSpecializationPayload]] = {}
    for record in ctx.records_by_kind(Category.GUARDS, "symbolic_shape_specialization"):
      if record.compile_id is None:
        continue
      index.setdefault(record.compile_id, []).append(
        decode_metadata(SymbolicShapeSpecializationPayload, record.metadata)
      )
    return index
