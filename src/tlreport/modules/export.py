from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from ..classifier import Category
from ..models import FakeKernelPayload, decode_metadata
from ..templates import esc, page, table
from .base import IndexContribution, Module, ModuleOutput

_DEFAULT_REASONS = {
  "missing_fake_kernel": "No fake kernel registered",
  "mismatched_fake_kernel": "Output mismatch",
}


@dataclass
class ExportFailure:
  failure_type: str
  op: str
  reason: str


def render_export_index(
  failures: List[ExportFailure], exported_program: Optional[str], custom_header_html: str = ""
) -> str:
  parts = []
  if failures:
    parts.append('<p class="status-error">Export failed</p>')
  elif exported_program is not None:
    parts.append('<p class="status-ok">Export successful</p>')

  if failures:
    rows = [
      (f'<span class="status-error">{esc(f.failure_type)}</span>', f"<code>{esc(f.op)}</code>", esc(f.reason))
      for f in failures
    ]
    parts.append("<h2>Export Failures</h2>")
    parts.append(table(["Type", "Operator", "Reason"], rows))

  if exported_program is not None:
    parts.append("<h2>Exported Program</h2>")
    parts.append(f"<details open><summary>View Program</summary><pre>{esc(exported_program)}</pre></details>")

  return page("Export Analysis", "\n".join(parts), custom_header_html)


class ExportModule(Module):
  """
  Export diagnostics. Produces the report's index.html, so it only writes
  anything when the report runs in export mode.
  """

  id = "export"
  name = "Export"
  subscriptions = frozenset({Category.EXPORT})

  def render(self, ctx) -> ModuleOutput:
    output = ModuleOutput()
    if not ctx.config.export_mode:
      return output

    failures: List[ExportFailure] = []
    exported_program: Optional[str] = None

    for record in ctx.read(Category.EXPORT):
      if record.kind in _DEFAULT_REASONS:
        meta = decode_metadata(FakeKernelPayload, record.metadata)
        failures.append(ExportFailure(
          record.kind, meta.op or "unknown", meta.reason or _DEFAULT_REASONS[record.kind]
        ))
      elif record.kind == "exported_program":
        exported_program = record.payload

    output.add_file(
      "index.html", render_export_index(failures, exported_program, ctx.config.custom_header_html)
    )
    if failures:
      output.index_contribution = IndexContribution(
        "Export Failures",
        f'<div class="export-failures-summary"><span>{len(failures)} export failure(s)</span></div>',
      )
    return output
