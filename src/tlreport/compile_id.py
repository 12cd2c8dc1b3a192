from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class CompileId(BaseModel):
  """
  Identity of one compilation attempt.

  Canonical string form is `[!<autograd>_]<frame>_<frame_compile>[_<attempt>]`.
  """

  model_config = ConfigDict(frozen=True)

  compiled_autograd_id: Optional[int] = None
  frame_id: Optional[int] = None
  frame_compile_id: Optional[int] = None
  attempt: Optional[int] = None

  @property
  def is_empty(self) -> bool:
    return (
      self.compiled_autograd_id is None
      and self.frame_id is None
      and self.frame_compile_id is None
      and self.attempt is None
    )

  def __str__(self) -> str:
    return encode_compile_id(self) or ""


def encode_compile_id(compile_id: Optional[CompileId]) -> Optional[str]:
  """
  Build the canonical string for a compile id.

  Returns None when the id is absent or carries no fields at all.
  """
  if compile_id is None or compile_id.is_empty:
    return None

  prefix = ""
  if compile_id.compiled_autograd_id is not None:
    prefix = f"!{compile_id.compiled_autograd_id}_"

  frame = "" if compile_id.frame_id is None else str(compile_id.frame_id)
  frame_compile = "" if compile_id.frame_compile_id is None else str(compile_id.frame_compile_id)
  attempt = "" if compile_id.attempt is None else f"_{compile_id.attempt}"

  return f"{prefix}{frame}_{frame_compile}{attempt}"


def _parse_token(tokens: List[str], index: int) -> Optional[int]:
  if index >= len(tokens):
    return None
  token = tokens[index].strip()
  if not (token.isascii() and token.isdigit()):
    return None
  return int(token)


def decode_compile_id(text: Optional[str]) -> Optional[CompileId]:
  """
  Recover a CompileId from its string form.

  Decoding never fails: tokens that are not non-negative integers become None
  for their field, so a garbled id degrades to an unlabeled entry.
  """
  if text is None:
    return None

  rest = text.strip()
  has_autograd = rest.startswith("!")
  if has_autograd:
    rest = rest[1:]

  tokens = rest.split("_")
  if has_autograd:
    return CompileId(
      compiled_autograd_id=_parse_token(tokens, 0),
      frame_id=_parse_token(tokens, 1),
      frame_compile_id=_parse_token(tokens, 2),
      attempt=_parse_token(tokens, 3),
    )

  return CompileId(
    frame_id=_parse_token(tokens, 0),
    frame_compile_id=_parse_token(tokens, 1),
    attempt=_parse_token(tokens, 2),
  )


def compile_id_sort_key(compile_id: str) -> Tuple[bool, int, int, int, int, str]:
  """
  Order compile ids numerically by field; ids that do not decode sort last by text.
  """
  cid = decode_compile_id(compile_id)
  if cid is None or cid.is_empty:
    return (True, -1, -1, -1, -1, compile_id)

  def field(value: Optional[int]) -> int:
    return -1 if value is None else value

  return (
    False,
    field(cid.compiled_autograd_id),
    field(cid.frame_id),
    field(cid.frame_compile_id),
    field(cid.attempt),
    compile_id,
  )


def format_display_name(compile_id: str) -> str:
  """
  Human-readable label used in directory listings, e.g. "0/1 (attempt 2)".
  """
  cid = decode_compile_id(compile_id)
  if cid is None or cid.is_empty:
    return compile_id

  parts = []
  if cid.compiled_autograd_id is not None:
    parts.append(f"!{cid.compiled_autograd_id}")
  parts.append("?" if cid.frame_id is None else str(cid.frame_id))
  parts.append("?" if cid.frame_compile_id is None else str(cid.frame_compile_id))

  label = "/".join(parts)
  if cid.attempt is not None:
    label += f" (attempt {cid.attempt})"
  return label
