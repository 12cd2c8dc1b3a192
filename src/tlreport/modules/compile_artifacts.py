"""
Per-compilation output files: graphs, generated code and generic artifacts.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Optional

from ..classifier import Category
from ..models import ArtifactPayload, InductorOutputCodePayload, LinkPayload, NamedPayload, decode_metadata
from ..templates import anchored_source, page
from .base import GLOBAL_KEY, DirectoryEntry, Module, ModuleOutput, render_artifact, safe_filename, unit_dir
from .cache import is_cache_artifact

_logger = logging.getLogger(__name__)

_EVAL_WITH_KEY = re.compile(r"<eval_with_key>\.(\d+)")


def eval_with_key_id(filename: str) -> Optional[str]:
  """Return N for a generated-module filename containing `<eval_with_key>.N`."""
  match = _EVAL_WITH_KEY.search(filename)
  return match.group(1) if match else None


def dump_file_name(name: str) -> str:
  key = eval_with_key_id(name)
  if key is not None:
    return f"eval_with_key_{key}"
  return safe_filename(name)


def graph_filename(kind: str, name: Optional[str]) -> str:
  if kind == "optimize_ddp_split_child":
    return f"optimize_ddp_split_child_{safe_filename(name or 'unknown')}.txt"
  if kind == "graph_dump":
    return f"{safe_filename(name or 'graph_dump')}.txt"
  return f"{kind}.txt"


def codegen_filename(source: Optional[str], plain_text: bool) -> str:
  base = "inductor_output_code"
  if source:
    base = f"inductor_output_code_{safe_filename(PurePosixPath(source).stem)}"
  return f"{base}.txt" if plain_text else f"{base}.html"


class CompileArtifactsModule(Module):
  id = "compile_artifacts"
  name = "Compile Artifacts"
  subscriptions = frozenset({Category.GRAPHS, Category.CODEGEN, Category.ARTIFACTS})

  def render(self, ctx) -> ModuleOutput:
    output = ModuleOutput()
    self._render_graphs(ctx, output)
    self._render_codegen(ctx, output)
    self._render_artifacts(ctx, output)
    return output

  def _render_graphs(self, ctx, output: ModuleOutput) -> None:
    for record in ctx.read(Category.GRAPHS):
      meta = decode_metadata(NamedPayload, record.metadata)
      filename = graph_filename(record.kind, meta.name)
      path = f"{unit_dir(record.compile_id)}/{filename}"
      output.add_file(path, record.payload or "")
      output.add_entry(record.compile_id, DirectoryEntry(filename, path))

  def _render_codegen(self, ctx, output: ModuleOutput) -> None:
    # dynamo_cpp_guards_str shares this category but belongs to the guards page.
    for record in ctx.records_by_kind(Category.CODEGEN, "inductor_output_code"):
      meta = decode_metadata(InductorOutputCodePayload, record.metadata)
      filename = codegen_filename(meta.filename, ctx.config.plain_text)
      code = record.payload or ""
      content = code if ctx.config.plain_text else page(filename, anchored_source(code))

      path = f"{unit_dir(record.compile_id)}/{filename}"
      output.add_file(path, content)
      output.add_entry(record.compile_id, DirectoryEntry(filename, path))

  def _render_artifacts(self, ctx, output: ModuleOutput) -> None:
    for record in ctx.read(Category.ARTIFACTS):
      if record.kind == "artifact":
        meta = decode_metadata(ArtifactPayload, record.metadata)
        name = meta.name or "artifact"
        if is_cache_artifact(name):
          continue
        filename, content = render_artifact(name, meta.encoding, record.payload)
        path = f"{unit_dir(record.compile_id)}/{filename}"
        output.add_file(path, content)
        output.add_entry(record.compile_id, DirectoryEntry(filename, path))

      elif record.kind == "dump_file":
        meta = decode_metadata(NamedPayload, record.metadata)
        filename = f"{dump_file_name(meta.name or 'dump')}.html"
        path = f"dump_file/{filename}"
        output.add_file(path, page(filename, anchored_source(record.payload or "")))
        output.add_entry(GLOBAL_KEY, DirectoryEntry(filename, path))

      elif record.kind == "link":
        meta = decode_metadata(LinkPayload, record.metadata)
        output.add_entry(record.compile_id, DirectoryEntry(meta.name or "Link", meta.url or "#"))

      else:
        _logger.debug("Ignoring artifact record of kind %s", record.kind)
