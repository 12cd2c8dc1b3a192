from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

_logger = logging.getLogger(__name__)


class PayloadModel(BaseModel):
  """
  Base for per-kind payload metadata.

  Unknown fields are kept so nothing the compiler logged is lost when the
  payload is normalized into an intermediate record.
  """

  model_config = ConfigDict(extra="allow", populate_by_name=True)


class FrameSummary(PayloadModel):
  # Usually an interned index into the log's string table, resolved by the
  # reader; some logs carry the path itself.
  filename: Optional[Union[int, str]] = None
  line: int = 0
  name: str = ""
  loc: Optional[str] = None
  uninterned_filename: Optional[str] = None

  @property
  def display_filename(self) -> str:
    if self.uninterned_filename:
      return self.uninterned_filename
    if isinstance(self.filename, str) and self.filename:
      return self.filename
    return "(unknown)"


class EmptyPayload(PayloadModel):
  pass


class DynamoStartPayload(PayloadModel):
  stack: Optional[List[FrameSummary]] = None


class CompilationMetricsPayload(PayloadModel):
  co_name: Optional[str] = None
  co_filename: Optional[str] = None
  co_firstlineno: Optional[int] = None
  cache_size: Optional[int] = None
  accumulated_cache_size: Optional[int] = None
  guard_count: Optional[int] = None
  shape_env_guard_count: Optional[int] = None
  graph_op_count: Optional[int] = None
  graph_node_count: Optional[int] = None
  graph_input_count: Optional[int] = None
  start_time: Optional[float] = None
  entire_frame_compile_time_s: Optional[float] = None
  backend_compile_time_s: Optional[float] = None
  inductor_compile_time_s: Optional[float] = None
  code_gen_time_s: Optional[float] = None
  fail_type: Optional[str] = None
  fail_reason: Optional[str] = None
  fail_user_frame_filename: Optional[str] = None
  fail_user_frame_lineno: Optional[int] = None
  non_compliant_ops: Optional[List[str]] = None
  compliant_custom_ops: Optional[List[str]] = None
  restart_reasons: Optional[List[str]] = None
  dynamo_time_before_restart_s: Optional[float] = None


class BwdCompilationMetricsPayload(PayloadModel):
  inductor_compile_time_s: Optional[float] = None
  code_gen_time_s: Optional[float] = None
  fail_type: Optional[str] = None
  fail_reason: Optional[str] = None


class AotAutogradBackwardCompilationMetricsPayload(PayloadModel):
  start_time: Optional[float] = None
  elapsed_time: Optional[float] = None
  fail_type: Optional[str] = None
  fail_reason: Optional[str] = None


class NamedPayload(PayloadModel):
  """Payload for graph_dump, optimize_ddp_split_child and dump_file."""

  name: Optional[str] = None


class InductorOutputCodePayload(PayloadModel):
  filename: Optional[str] = None


class SymbolicShapeSpecializationPayload(PayloadModel):
  symbol: Optional[str] = None
  sources: List[Any] = Field(default_factory=list)
  value: Any = None
  reason: Optional[str] = None
  stack: Optional[List[Any]] = None
  user_stack: Optional[List[Any]] = None


class GuardAddedFastPayload(PayloadModel):
  expr: Optional[str] = None
  stack: Optional[List[Any]] = None
  user_stack: Optional[List[Any]] = None


class SymbolicGuardPayload(PayloadModel):
  """Payload for guard_added and propagate_real_tensors_provenance."""

  expr: Optional[str] = None
  prefix: Optional[str] = None
  expr_node_id: Optional[int] = None
  stack: Optional[List[Any]] = None
  user_stack: Optional[List[Any]] = None
  frame_locals: Any = None


class CreateUnbackedSymbolPayload(PayloadModel):
  symbol: Optional[str] = None
  vr: Optional[str] = None
  stack: Optional[List[Any]] = None
  user_stack: Optional[List[Any]] = None


class ExpressionCreatedPayload(PayloadModel):
  # Older logs call the node id "id", newer ones "result_id".
  node_id: Optional[int] = Field(
    default=None,
    validation_alias=AliasChoices("id", "result_id"),
    serialization_alias="id",
  )
  result: Optional[str] = None
  method: Optional[str] = None
  arguments: List[str] = Field(default_factory=list)
  argument_ids: List[int] = Field(default_factory=list)
  stack: Optional[List[Any]] = None
  user_stack: Optional[List[Any]] = None


class ArtifactPayload(PayloadModel):
  name: Optional[str] = None
  encoding: str = "string"


class LinkPayload(PayloadModel):
  name: Optional[str] = None
  url: Optional[str] = None


class FakeKernelPayload(PayloadModel):
  """Payload for missing_fake_kernel and mismatched_fake_kernel."""

  op: Optional[str] = None
  reason: Optional[str] = None


class DynamoGuard(PayloadModel):
  """One entry of the JSON guard list carried by dynamo_guards payloads."""

  code: Optional[str] = None
  guard_type: Optional[str] = Field(default=None, alias="type")
  guard_types: Optional[List[str]] = None


class NormalizedRecord(BaseModel):
  """
  One line of an intermediate category stream.

  Serialized with a stable field set: type, compile_id, rank, timestamp,
  thread, pathname, lineno, metadata and (only when present) payload.
  """

  model_config = ConfigDict(populate_by_name=True)

  kind: str = Field(..., alias="type")
  compile_id: Optional[str] = None
  rank: Optional[int] = None
  timestamp: str = ""
  thread: int = 0
  pathname: str = ""
  lineno: int = 0
  metadata: Any = None
  payload: Optional[str] = None

  def to_json_line(self) -> str:
    exclude = {"payload"} if self.payload is None else None
    return self.model_dump_json(by_alias=True, exclude=exclude)


class Manifest(BaseModel):
  """
  Description of a completed intermediate set, persisted as manifest.json.
  """

  version: str = "2.0"
  generated_at: str
  source_file: str
  source_file_hash: Optional[str] = None
  total_envelopes: int = 0
  envelope_counts: Dict[str, int] = Field(default_factory=dict)
  compile_ids: List[str] = Field(default_factory=list)
  string_table_entries: int = 0
  parse_mode: str = "normal"
  ranks: List[int] = Field(default_factory=list)
  files: List[str] = Field(default_factory=list)


M = TypeVar("M", bound=BaseModel)


def decode_metadata(model: Type[M], metadata: Any) -> M:
  """
  Interpret a record's metadata blob as a typed payload.

  Missing or mistyped metadata falls back to the model's defaults so a
  renderer degrades instead of failing on one odd record.
  """
  if not isinstance(metadata, dict):
    return model()
  try:
    return model.model_validate(metadata)
  except ValidationError as exc:
    _logger.debug("Metadata did not match %s: %s", model.__name__, exc)
    return model()
