"""
Envelope model: one structured log event as a (kind, typed payload) pair.

A raw event is a JSON object carrying at most one payload key. The key
names the kind; its value is decoded into the payload model registered for
that kind. Events with only a `stack` key are bare stacks. Anything else is
an unknown event and is later dropped by the classifier.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from .compile_id import CompileId
from .models import (
  AotAutogradBackwardCompilationMetricsPayload,
  ArtifactPayload,
  BwdCompilationMetricsPayload,
  CompilationMetricsPayload,
  CreateUnbackedSymbolPayload,
  DynamoStartPayload,
  EmptyPayload,
  ExpressionCreatedPayload,
  FakeKernelPayload,
  FrameSummary,
  GuardAddedFastPayload,
  InductorOutputCodePayload,
  LinkPayload,
  NamedPayload,
  SymbolicGuardPayload,
  SymbolicShapeSpecializationPayload,
)


class EnvelopeError(ValueError):
  """Raised when a raw event cannot be turned into an Envelope."""


# Detection order; the first present key wins when logs are inspected.
ENVELOPE_KINDS: Tuple[str, ...] = (
  "dynamo_output_graph",
  "compilation_metrics",
  "dynamo_guards",
  "inductor_output_code",
  "chromium_event",
  "dynamo_start",
  "aot_forward_graph",
  "aot_backward_graph",
  "aot_joint_graph",
  "aot_inference_graph",
  "inductor_pre_grad_graph",
  "inductor_post_grad_graph",
  "optimize_ddp_split_graph",
  "optimize_ddp_split_child",
  "compiled_autograd_graph",
  "graph_dump",
  "dynamo_cpp_guards_str",
  "bwd_compilation_metrics",
  "aot_autograd_backward_compilation_metrics",
  "symbolic_shape_specialization",
  "guard_added_fast",
  "propagate_real_tensors_provenance",
  "guard_added",
  "create_unbacked_symbol",
  "expression_created",
  "artifact",
  "dump_file",
  "link",
  "describe_tensor",
  "describe_storage",
  "describe_source",
  "missing_fake_kernel",
  "mismatched_fake_kernel",
  "exported_program",
  "str",
)

PAYLOAD_MODELS: Dict[str, Type[BaseModel]] = {
  "compilation_metrics": CompilationMetricsPayload,
  "bwd_compilation_metrics": BwdCompilationMetricsPayload,
  "aot_autograd_backward_compilation_metrics": AotAutogradBackwardCompilationMetricsPayload,
  "dynamo_start": DynamoStartPayload,
  "optimize_ddp_split_child": NamedPayload,
  "graph_dump": NamedPayload,
  "dump_file": NamedPayload,
  "inductor_output_code": InductorOutputCodePayload,
  "symbolic_shape_specialization": SymbolicShapeSpecializationPayload,
  "guard_added_fast": GuardAddedFastPayload,
  "guard_added": SymbolicGuardPayload,
  "propagate_real_tensors_provenance": SymbolicGuardPayload,
  "create_unbacked_symbol": CreateUnbackedSymbolPayload,
  "expression_created": ExpressionCreatedPayload,
  "artifact": ArtifactPayload,
  "link": LinkPayload,
  "missing_fake_kernel": FakeKernelPayload,
  "mismatched_fake_kernel": FakeKernelPayload,
}

# Kinds whose payload value is kept as plain JSON.
_PASSTHROUGH_KINDS = frozenset({
  "chromium_event",
  "describe_tensor",
  "describe_storage",
  "describe_source",
  "str",
})

_COMPILE_ID_FIELDS = ("compiled_autograd_id", "frame_id", "frame_compile_id", "attempt")


def _decode_payload(kind: str, value: Any) -> Any:
  if kind in _PASSTHROUGH_KINDS:
    return value

  model = PAYLOAD_MODELS.get(kind, EmptyPayload)
  if value is None:
    value = {}
  if not isinstance(value, dict):
    raise EnvelopeError(f"Payload for '{kind}' must be an object, got {type(value).__name__}")
  try:
    return model.model_validate(value)
  except ValidationError as exc:
    raise EnvelopeError(f"Invalid payload for '{kind}': {exc}") from exc


def _decode_compile_id(raw: Dict[str, Any]) -> Optional[CompileId]:
  fields = {name: raw.get(name) for name in _COMPILE_ID_FIELDS}
  if all(value is None for value in fields.values()):
    return None
  try:
    return CompileId(**fields)
  except ValidationError as exc:
    raise EnvelopeError(f"Invalid compile id fields: {exc}") from exc


def _decode_stack(value: Any) -> Optional[List[FrameSummary]]:
  if value is None:
    return None
  if not isinstance(value, list):
    raise EnvelopeError("Field 'stack' must be a list of frames")
  try:
    return [FrameSummary.model_validate(frame) for frame in value]
  except ValidationError as exc:
    raise EnvelopeError(f"Invalid stack frame: {exc}") from exc


class Envelope(BaseModel):
  """
  One decoded event.

  `kind` is None for events this version does not know; such envelopes are
  counted by the reader but never reach an intermediate file.
  """

  model_config = ConfigDict(arbitrary_types_allowed=True)

  kind: Optional[str] = None
  payload: Any = None
  compile_id: Optional[CompileId] = None
  rank: Optional[int] = None
  timestamp: str = ""
  thread: int = 0
  pathname: str = ""
  lineno: int = 0
  stack: Optional[List[FrameSummary]] = None
  inline_payload: Optional[str] = None

  @classmethod
  def from_raw(
    cls,
    raw: Dict[str, Any],
    *,
    rank: Optional[int] = None,
    timestamp: str = "",
    thread: int = 0,
    pathname: str = "",
    lineno: int = 0,
    inline_payload: Optional[str] = None,
  ) -> "Envelope":
    """
    Build an Envelope from a parsed JSON event.

    Raises:
      EnvelopeError: If the event carries more than one payload kind or a
        payload that does not match its kind's model.
    """
    if not isinstance(raw, dict):
      raise EnvelopeError(f"Event must be a JSON object, got {type(raw).__name__}")

    present = [kind for kind in ENVELOPE_KINDS if raw.get(kind) is not None]
    if len(present) > 1:
      raise EnvelopeError(f"Event carries multiple payload kinds: {', '.join(present)}")

    stack = _decode_stack(raw.get("stack"))

    kind: Optional[str] = None
    payload: Any = None
    if present:
      kind = present[0]
      payload = _decode_payload(kind, raw[kind])
    elif stack is not None:
      kind = "stack"

    return cls(
      kind=kind,
      payload=payload,
      compile_id=_decode_compile_id(raw),
      rank=rank,
      timestamp=timestamp,
      thread=thread,
      pathname=pathname,
      lineno=lineno,
      stack=stack,
      inline_payload=inline_payload,
    )

  def metadata(self) -> Any:
    """
    JSON-ready metadata for the normalized record of this envelope.

    dynamo_start folds the envelope's stack in, since that is the only place
    the stack trie can find it once records are partitioned.
    """
    if self.kind is None:
      return None

    if self.kind == "stack":
      return _dump_frames(self.stack)

    if isinstance(self.payload, BaseModel):
      metadata = self.payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
    else:
      metadata = self.payload

    if self.kind == "dynamo_start" and self.stack is not None:
      metadata = dict(metadata or {})
      metadata["stack"] = _dump_frames(self.stack)

    return metadata


def _dump_frames(frames: Optional[List[FrameSummary]]) -> Optional[List[Dict[str, Any]]]:
  if frames is None:
    return None
  return [frame.model_dump(mode="json", exclude_unset=True) for frame in frames]
