from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional, Tuple

from ..classifier import Category

if TYPE_CHECKING:
  from .context import ModuleContext

# Directory key for entries that do not belong to one compile id.
GLOBAL_KEY = "__global__"


@dataclass
class DirectoryEntry:
  """A link shown under one compile id (or the global section) of the index."""

  name: str
  url: str
  suffix: str = ""


@dataclass
class IndexContribution:
  section: str
  html: str


@dataclass
class ModuleOutput:
  """
  Result of one module's render.

  files: (relative path, content) pairs written under the output directory.
  directory_entries: compile id string (or GLOBAL_KEY) -> ordered entries.
  index_contribution: optional section for the top-level index page.
  """

  files: List[Tuple[str, str]] = field(default_factory=list)
  directory_entries: Dict[str, List[DirectoryEntry]] = field(default_factory=dict)
  index_contribution: Optional[IndexContribution] = None

  def add_file(self, path: str, content: str) -> None:
    self.files.append((path, content))

  def add_entry(self, key: Optional[str], entry: DirectoryEntry) -> None:
    self.directory_entries.setdefault(directory_key(key), []).append(entry)


class Module(ABC):
  """
  A stateless transformation from intermediate records to report files.

  Subclasses declare which categories they read; the declaration is
  informational, the module reads what it needs through the context.
  """

  id: str = ""
  name: str = ""
  subscriptions: FrozenSet[Category] = frozenset()

  @abstractmethod
  def render(self, ctx: "ModuleContext") -> ModuleOutput:
    raise NotImplementedError


def directory_key(compile_id: Optional[str]) -> str:
  return GLOBAL_KEY if compile_id is None else compile_id


def safe_filename(name: str) -> str:
  """Replace anything but alphanumerics, dash, underscore and dot with '_'."""
  return "".join(c if c.isalnum() or c in ("-", "_", ".") else "_" for c in name)


def unit_dir(compile_id: Optional[str]) -> str:
  """Output subdirectory for a compile id; records without one go to 'unknown'."""
  return "unknown" if compile_id is None else safe_filename(compile_id)


def render_artifact(name: str, encoding: str, payload: Optional[str]) -> Tuple[str, str]:
  """
  File name and content for a generic artifact.

  JSON-encoded payloads are pretty-printed into `<name>.json` when they
  parse; anything else is written verbatim to `<name>.txt`.
  """
  payload = payload or ""
  base = safe_filename(name)
  if encoding == "json":
    try:
      return f"{base}.json", json.dumps(json.loads(payload), indent=2)
    except ValueError:
      return f"{base}.json", payload
  return f"{base}.txt", payload
