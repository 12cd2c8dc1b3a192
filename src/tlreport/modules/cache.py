"""
Cache decisions (hit, miss, bypass) logged as generic artifacts.

The compiler marks a cache decision only through the artifact name, so
`cache_status` is the one place that interprets those names. Every other
renderer asks it before handling an artifact.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..classifier import Category
from ..models import ArtifactPayload, decode_metadata
from .base import DirectoryEntry, IndexContribution, Module, ModuleOutput, render_artifact, unit_dir


class CacheStatus(str, Enum):
  HIT = "hit"
  MISS = "miss"
  BYPASS = "bypass"
  UNKNOWN = "unknown"

  @property
  def suffix(self) -> str:
    return _SUFFIXES[self]


_SUFFIXES = {
  CacheStatus.HIT: "✅",
  CacheStatus.MISS: "❌",
  CacheStatus.BYPASS: "❓",
  CacheStatus.UNKNOWN: "",
}


def cache_status(name: str) -> CacheStatus:
  if "cache_hit" in name:
    return CacheStatus.HIT
  if "cache_miss" in name:
    return CacheStatus.MISS
  if "cache_bypass" in name:
    return CacheStatus.BYPASS
  return CacheStatus.UNKNOWN


def is_cache_artifact(name: str) -> bool:
  return cache_status(name) is not CacheStatus.UNKNOWN


@dataclass
class CacheSummary:
  hits: int = 0
  misses: int = 0
  bypasses: int = 0

  def add(self, status: CacheStatus) -> None:
    if status is CacheStatus.HIT:
      self.hits += 1
    elif status is CacheStatus.MISS:
      self.misses += 1
    elif status is CacheStatus.BYPASS:
      self.bypasses += 1

  @property
  def total(self) -> int:
    return self.hits + self.misses + self.bypasses

  def to_html(self) -> str:
    return (
      '<div class="cache-summary">'
      f'<span title="Cache hits">✅ {self.hits} hit(s)</span> '
      f'<span title="Cache misses">❌ {self.misses} miss(es)</span> '
      f'<span title="Cache bypasses">❓ {self.bypasses} bypass(es)</span> '
      f"<span>({self.total} total)</span>"
      "</div>"
    )


class CacheModule(Module):
  id = "cache"
  name = "Cache"
  subscriptions = frozenset({Category.ARTIFACTS})

  def render(self, ctx) -> ModuleOutput:
    output = ModuleOutput()
    summary = CacheSummary()

    for record in ctx.records_by_kind(Category.ARTIFACTS, "artifact"):
      meta = decode_metadata(ArtifactPayload, record.metadata)
      name = meta.name or "cache_artifact"
      status = cache_status(name)
      if status is CacheStatus.UNKNOWN:
        continue

      summary.add(status)
      filename, content = render_artifact(name, meta.encoding, record.payload)
      path = f"{unit_dir(record.compile_id)}/{filename}"
      output.add_file(path, content)
      output.add_entry(record.compile_id, DirectoryEntry(filename, path, status.suffix))

    if summary.total:
      output.index_contribution = IndexContribution("Cache Status", summary.to_html())
    return output
