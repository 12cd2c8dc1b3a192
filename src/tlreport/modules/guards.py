from __future__ import annotations

import json
import logging
from typing import List, Optional

from pydantic import ValidationError

from ..classifier import Category
from ..models import DynamoGuard
from ..templates import esc, page, table
from .base import DirectoryEntry, Module, ModuleOutput, unit_dir

_logger = logging.getLogger(__name__)


def parse_guards(payload: Optional[str]) -> List[DynamoGuard]:
  """Decode the JSON guard list; an unreadable payload yields no guards."""
  if not payload:
    return []
  try:
    data = json.loads(payload)
  except json.JSONDecodeError as exc:
    _logger.debug("Guard payload is not JSON: %s", exc)
    return []
  if not isinstance(data, list):
    return []

  guards = []
  for item in data:
    try:
      guards.append(DynamoGuard.model_validate(item))
    except ValidationError:
      _logger.debug("Skipping malformed guard entry: %r", item)
  return guards


def render_guards_page(guards: List[DynamoGuard]) -> str:
  rows = [
    (
      f"<pre>{esc(guard.code)}</pre>",
      esc(guard.guard_type),
      esc(", ".join(guard.guard_types or [])),
    )
    for guard in guards
  ]
  body = (
    '<input type="text" id="guard-filter" placeholder="Filter guards..." '
    "oninput=\"filterTable('guard-filter', 'guards-table')\">"
    f'<p class="summary">{len(guards)} guard(s)</p>'
    + table(["Code", "Type", "Guard Types"], rows, table_id="guards-table")
  )
  return page("Dynamo Guards", body)


class GuardsModule(Module):
  id = "guards"
  name = "Dynamo Guards"
  subscriptions = frozenset({Category.GUARDS, Category.CODEGEN})

  def render(self, ctx) -> ModuleOutput:
    output = ModuleOutput()

    for record in ctx.records_by_kind(Category.GUARDS, "dynamo_guards"):
      filename = "dynamo_guards.html"
      path = f"{unit_dir(record.compile_id)}/{filename}"
      output.add_file(path, render_guards_page(parse_guards(record.payload)))
      output.add_entry(record.compile_id, DirectoryEntry(filename, path))

    for record in ctx.records_by_kind(Category.CODEGEN, "dynamo_cpp_guards_str"):
      filename = "dynamo_cpp_guards_str.txt"
      path = f"{unit_dir(record.compile_id)}/{filename}"
      output.add_file(path, record.payload or "")
      output.add_entry(record.compile_id, DirectoryEntry(filename, path))

    return output
