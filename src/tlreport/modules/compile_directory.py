from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from ..classifier import Category
from ..compile_id import format_display_name
from ..models import (
  ArtifactPayload,
  InductorOutputCodePayload,
  LinkPayload,
  NamedPayload,
  decode_metadata,
)
from .base import GLOBAL_KEY, Module, ModuleOutput, directory_key, render_artifact
from .cache import is_cache_artifact
from .compile_artifacts import codegen_filename, graph_filename

DIRECTORY_FILENAME = "compile_directory.json"

_METRIC_KINDS = (
  "compilation_metrics",
  "bwd_compilation_metrics",
  "aot_autograd_backward_compilation_metrics",
)


class _UnitEntry:
  def __init__(self, key: str):
    self.display_name = "(global)" if key == GLOBAL_KEY else format_display_name(key)
    self.status = "unknown"
    self.artifacts: Dict[str, str] = {}
    self.links: List[Dict[str, str]] = []

  def add_artifact(self, name: str, artifact_type: str) -> None:
    self.artifacts.setdefault(name, artifact_type)

  def to_dict(self) -> Dict[str, Any]:
    return {
      "display_name": self.display_name,
      "status": self.status,
      "artifacts": [{"name": name, "type": self.artifacts[name]} for name in sorted(self.artifacts)],
      "links": self.links,
    }


class CompileDirectoryModule(Module):
  """
  Machine-readable summary of what was produced for each compile id.

  Status is "failure" once any metrics record of the id carries a failure
  type, "success" when metrics exist without one, and "unknown" otherwise.
  """

  id = "compile_directory"
  name = "Compile Directory"
  subscriptions = frozenset({
    Category.GRAPHS,
    Category.CODEGEN,
    Category.GUARDS,
    Category.COMPILATION_METRICS,
    Category.ARTIFACTS,
  })

  def render(self, ctx) -> ModuleOutput:
    units: Dict[str, _UnitEntry] = {}

    def unit(compile_id: Optional[str]) -> _UnitEntry:
      key = directory_key(compile_id)
      if key not in units:
        units[key] = _UnitEntry(key)
      return units[key]

    for record in ctx.read(Category.GRAPHS):
      meta = decode_metadata(NamedPayload, record.metadata)
      unit(record.compile_id).add_artifact(graph_filename(record.kind, meta.name), "graph")

    for record in ctx.read(Category.CODEGEN):
      if record.kind == "inductor_output_code":
        meta = decode_metadata(InductorOutputCodePayload, record.metadata)
        unit(record.compile_id).add_artifact(codegen_filename(meta.filename, ctx.config.plain_text), "codegen")
      elif record.kind == "dynamo_cpp_guards_str":
        unit(record.compile_id).add_artifact("dynamo_cpp_guards_str.txt", "guards")

    for record in ctx.records_by_kind(Category.GUARDS, "dynamo_guards"):
      unit(record.compile_id).add_artifact("dynamo_guards.html", "guards")

    for record in ctx.read(Category.COMPILATION_METRICS):
      if record.kind not in _METRIC_KINDS:
        continue
      entry = unit(record.compile_id)
      entry.add_artifact(f"{record.kind}.html", "metrics")
      fail_type = record.metadata.get("fail_type") if isinstance(record.metadata, dict) else None
      if fail_type:
        entry.status = "failure"
      elif entry.status == "unknown":
        entry.status = "success"

    for record in ctx.read(Category.ARTIFACTS):
      if record.kind == "artifact":
        meta = decode_metadata(ArtifactPayload, record.metadata)
        name = meta.name or "artifact"
        filename, _ = render_artifact(name, meta.encoding, "")
        unit(record.compile_id).add_artifact(filename, "cache" if is_cache_artifact(name) else "artifact")
      elif record.kind == "link":
        meta = decode_metadata(LinkPayload, record.metadata)
        unit(record.compile_id).links.append({"name": meta.name or "Link", "url": meta.url or "#"})

    directory = {key: units[key].to_dict() for key in sorted(units)}
    output = ModuleOutput()
    output.add_file(DIRECTORY_FILENAME, json.dumps(directory, indent=2, ensure_ascii=False))
    return output
