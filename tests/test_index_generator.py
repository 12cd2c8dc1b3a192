"""Tests for the top-level index page."""

from tlreport.models import Manifest
from tlreport.modules import CombinedOutput, DirectoryEntry, IndexContribution, IndexGenerator


def _combined():
  combined = CombinedOutput()
  combined.directory_entries = {
    "1_0": [DirectoryEntry("b.txt", "1_0/b.txt")],
    "0_0": [DirectoryEntry("a.txt", "0_0/a.txt"), DirectoryEntry("hit.json", "0_0/hit.json", "✅")],
    "__global__": [DirectoryEntry("chromium_events.json", "chromium_events.json")],
  }
  combined.index_contributions = [IndexContribution("Stack Trie", "<div>trie</div>")]
  return combined


def test_directory_is_sorted_and_excludes_global():
  directory = IndexGenerator().build_directory(_combined().directory_entries)
  assert [key for key, _ in directory] == ["0_0", "1_0"]


def test_index_page_sections():
  manifest = Manifest(
    generated_at="2024-01-01T00:00:00+00:00",
    source_file="run<1>.log",
    total_envelopes=12,
    compile_ids=["0_0", "1_0"],
    ranks=[0, 1],
  )
  html = IndexGenerator("<p>header</p>").generate(_combined(), manifest)

  assert "<title>Compilation Report</title>" in html
  assert "<p>header</p>" in html
  assert "run&lt;1&gt;.log" in html
  assert "12 event(s), 2 compile id(s)" in html
  assert '<h2>Stack Trie</h2><div>trie</div>' in html
  assert '<li id="0_0">' in html
  assert html.index('<li id="0_0">') < html.index('<li id="1_0">')
  assert '<a href="0_0/hit.json">hit.json</a> ✅' in html
  assert "<h2>Global Files</h2>" in html


def test_failed_modules_are_announced():
  combined = CombinedOutput(failed_modules=["Stack Trie"])
  html = IndexGenerator().generate(combined)

  assert "Some sections could not be rendered: Stack Trie" in html
  assert "No compilation artifacts." in html
  assert "Global Files" not in html


def test_directory_orders_compile_ids_numerically():
  entries = {key: [DirectoryEntry("a.txt", f"{key}/a.txt")] for key in ["10_0", "2_0", "!0_1_0", "odd", "2_0_1"]}
  directory = IndexGenerator().build_directory(entries)
  assert [key for key, _ in directory] == ["2_0", "2_0_1", "10_0", "!0_1_0", "odd"]
