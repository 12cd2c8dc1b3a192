"""Routing of envelope kinds into intermediate categories.

Each event kind belongs to exactly one category. Kinds that are internal to
the log format (the string table) or unknown to this version are dropped.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class Category(str, Enum):
  """Intermediate output partitions."""

  GRAPHS = "graphs"
  CODEGEN = "codegen"
  GUARDS = "guards"
  COMPILATION_METRICS = "compilation_metrics"
  CHROMIUM_EVENTS = "chromium_events"
  ARTIFACTS = "artifacts"
  TENSOR_METADATA = "tensor_metadata"
  EXPORT = "export"

  @property
  def filename(self) -> str:
    if self is Category.CHROMIUM_EVENTS:
      return "chromium_events.json"
    return f"{self.value}.jsonl"

  @property
  def is_line_delimited(self) -> bool:
    return self is not Category.CHROMIUM_EVENTS


_KIND_TO_CATEGORY: Dict[str, Category] = {
  # Graphs
  "dynamo_output_graph": Category.GRAPHS,
  "optimize_ddp_split_graph": Category.GRAPHS,
  "optimize_ddp_split_child": Category.GRAPHS,
  "compiled_autograd_graph": Category.GRAPHS,
  "aot_forward_graph": Category.GRAPHS,
  "aot_backward_graph": Category.GRAPHS,
  "aot_inference_graph": Category.GRAPHS,
  "aot_joint_graph": Category.GRAPHS,
  "inductor_pre_grad_graph": Category.GRAPHS,
  "inductor_post_grad_graph": Category.GRAPHS,
  "graph_dump": Category.GRAPHS,
  # Codegen
  "inductor_output_code": Category.CODEGEN,
  "dynamo_cpp_guards_str": Category.CODEGEN,
  # Guards and symbolic shapes
  "dynamo_guards": Category.GUARDS,
  "symbolic_shape_specialization": Category.GUARDS,
  "guard_added_fast": Category.GUARDS,
  "propagate_real_tensors_provenance": Category.GUARDS,
  "guard_added": Category.GUARDS,
  "create_unbacked_symbol": Category.GUARDS,
  "expression_created": Category.GUARDS,
  # Compilation metrics and stacks
  "compilation_metrics": Category.COMPILATION_METRICS,
  "bwd_compilation_metrics": Category.COMPILATION_METRICS,
  "aot_autograd_backward_compilation_metrics": Category.COMPILATION_METRICS,
  "dynamo_start": Category.COMPILATION_METRICS,
  "stack": Category.COMPILATION_METRICS,
  # Trace spans
  "chromium_event": Category.CHROMIUM_EVENTS,
  # Generic artifacts
  "artifact": Category.ARTIFACTS,
  "dump_file": Category.ARTIFACTS,
  "link": Category.ARTIFACTS,
  # Tensor metadata
  "describe_tensor": Category.TENSOR_METADATA,
  "describe_storage": Category.TENSOR_METADATA,
  "describe_source": Category.TENSOR_METADATA,
  # Export diagnostics
  "missing_fake_kernel": Category.EXPORT,
  "mismatched_fake_kernel": Category.EXPORT,
  "exported_program": Category.EXPORT,
}

# Kinds that are recognized but never reach an intermediate file.
DROPPED_KINDS = frozenset({"str"})


def classify(kind: Optional[str]) -> Optional[Category]:
  """
  Return the category for an envelope kind, or None when it must be dropped.
  """
  if kind is None:
    return None
  return _KIND_TO_CATEGORY.get(kind)


def known_kinds() -> Dict[str, Category]:
  return dict(_KIND_TO_CATEGORY)
