from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..compile_id import compile_id_sort_key
from ..models import Manifest
from ..templates import esc, page
from .base import GLOBAL_KEY, DirectoryEntry
from .registry import CombinedOutput


class IndexGenerator:
  """
  Builds the top-level index.html from the merged module outputs.

  Runs after every module, so it sees the final directory and the list of
  modules that failed.
  """

  def __init__(self, custom_header_html: str = ""):
    self.custom_header_html = custom_header_html

  def build_directory(
    self, entries: Dict[str, List[DirectoryEntry]]
  ) -> List[Tuple[str, List[DirectoryEntry]]]:
    """Per-compile-id entries sorted by compile id; the global key is excluded."""
    return sorted(
      ((key, list(values)) for key, values in entries.items() if key != GLOBAL_KEY),
      key=lambda item: compile_id_sort_key(item[0]),
    )

  def generate(self, combined: CombinedOutput, manifest: Optional[Manifest] = None) -> str:
    parts = []

    if manifest is not None:
      parts.append(self._render_summary(manifest))

    if combined.failed_modules:
      names = ", ".join(esc(name) for name in combined.failed_modules)
      parts.append(
        f'<div class="notice">Some sections could not be rendered: {names}. '
        "See the log output for details.</div>"
      )

    for contribution in combined.index_contributions:
      parts.append(
        f'<div class="section"><h2>{esc(contribution.section)}</h2>{contribution.html}</div>'
      )

    parts.append(self._render_directory(combined.directory_entries))

    global_entries = combined.directory_entries.get(GLOBAL_KEY, [])
    if global_entries:
      parts.append("<h2>Global Files</h2>" + _entry_list(global_entries))

    return page("Compilation Report", "\n".join(parts), self.custom_header_html)

  def _render_summary(self, manifest: Manifest) -> str:
    ranks = ", ".join(str(r) for r in manifest.ranks) or "none"
    return (
      '<div class="summary">'
      f"Source: <code>{esc(manifest.source_file)}</code><br>"
      f"{manifest.total_envelopes} event(s), {len(manifest.compile_ids)} compile id(s), "
      f"ranks: {esc(ranks)}"
      "</div>"
    )

  def _render_directory(self, entries: Dict[str, List[DirectoryEntry]]) -> str:
    directory = self.build_directory(entries)
    if not directory:
      return '<h2>IR dumps</h2><p class="placeholder">No compilation artifacts.</p>'

    blocks = []
    for compile_id, items in directory:
      blocks.append(
        f'<li id="{esc(compile_id)}"><a href="#{esc(compile_id)}">{esc(compile_id)}</a>'
        f"{_entry_list(items)}</li>"
      )
    return '<h2>IR dumps</h2><ul class="directory">' + "".join(blocks) + "</ul>"


def _entry_list(entries: List[DirectoryEntry]) -> str:
  items = []
  for number, entry in enumerate(entries):
    suffix = f" {esc(entry.suffix)}" if entry.suffix else ""
    items.append(f'<li><a href="{esc(entry.url)}">{esc(entry.name)}</a>{suffix} <small>({number})</small></li>')
  return "<ul>" + "".join(items) + "</ul>"
