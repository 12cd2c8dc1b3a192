from __future__ import annotations

import json

from ..classifier import Category
from .base import GLOBAL_KEY, DirectoryEntry, IndexContribution, Module, ModuleOutput

TRACE_FILENAME = "chromium_events.json"


class ChromiumTraceModule(Module):
  """Copies the buffered trace spans out as a file loadable by chrome://tracing."""

  id = "chromium_trace"
  name = "Chromium Trace"
  subscriptions = frozenset({Category.CHROMIUM_EVENTS})

  def render(self, ctx) -> ModuleOutput:
    output = ModuleOutput()
    spans = ctx.read_trace_spans()
    if not spans:
      return output

    output.add_file(TRACE_FILENAME, json.dumps(spans, indent=2))
    output.add_entry(GLOBAL_KEY, DirectoryEntry(TRACE_FILENAME, TRACE_FILENAME))
    output.index_contribution = IndexContribution(
      "Chromium Trace",
      f'<div class="chromium-trace"><a href="{TRACE_FILENAME}" target="_blank">View Chromium Trace</a> '
      f'<span class="summary">({len(spans)} event(s); open in chrome://tracing or Perfetto)</span></div>',
    )
    return output
