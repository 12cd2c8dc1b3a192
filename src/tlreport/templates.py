"""
HTML building blocks shared by the report pages.

Pages are assembled with f-strings; every value that comes from the log is
passed through `esc` first.
"""

import html as html_lib
from typing import Any, Iterable, List, Optional

CSS = """
body { font-family: -apple-system, "Segoe UI", Helvetica, Arial, sans-serif; margin: 1.5em; color: #1f2328; }
h1, h2, h3 { font-weight: 600; }
a { color: #0969da; text-decoration: none; }
a:hover { text-decoration: underline; }
pre, code { font-family: ui-monospace, SFMono-Regular, Menlo, monospace; font-size: 0.9em; }
pre { background: #f6f8fa; padding: 0.75em; overflow-x: auto; }
table { border-collapse: collapse; margin: 0.5em 0; }
th, td { border: 1px solid #d0d7de; padding: 0.3em 0.6em; text-align: left; vertical-align: top; }
th { background: #f6f8fa; }
.summary { color: #57606a; margin-bottom: 1em; }
.notice { background: #fff8c5; border: 1px solid #d4a72c; padding: 0.5em 1em; margin: 1em 0; }
.section { margin: 1.5em 0; }
.directory li { margin: 0.15em 0; }
.stack-trie { font-family: ui-monospace, SFMono-Regular, Menlo, monospace; font-size: 0.9em; }
.stack-trie ul { list-style: none; margin: 0; padding-left: 1.2em; }
.stack-trie li { margin: 0; }
.collapsible { cursor: pointer; user-select: none; }
.collapsible::before { content: "\\25B8 "; }
.collapsible.open::before { content: "\\25BE "; }
.collapsed { display: none; }
.status-ok { color: #1a7f37; }
.status-break { color: #9a6700; }
.status-empty { color: #57606a; }
.status-error { color: #cf222e; font-weight: 600; }
.status-missing { color: #8c959f; font-style: italic; }
.line-anchor { color: #8c959f; user-select: none; display: inline-block; min-width: 3em; }
.expr-tree ul { list-style: none; padding-left: 1.2em; }
.placeholder { color: #8c959f; font-style: italic; }
#guard-filter { margin: 0.5em 0; padding: 0.3em; width: 30em; }
"""

JAVASCRIPT = """
function toggleList(el) {
  el.classList.toggle("open");
  var target = el.parentElement.querySelector("ul");
  if (target) { target.classList.toggle("collapsed"); }
}
function filterTable(inputId, tableId) {
  var needle = document.getElementById(inputId).value.toLowerCase();
  var rows = document.getElementById(tableId).getElementsByTagName("tr");
  for (var i = 1; i < rows.length; i++) {
    rows[i].style.display = rows[i].textContent.toLowerCase().indexOf(needle) === -1 ? "none" : "";
  }
}
"""


def esc(value: Any) -> str:
  """Escape any value for HTML text or attribute context."""
  if value is None:
    return ""
  return html_lib.escape(str(value), quote=True)


def page(title: str, body: str, custom_header_html: str = "") -> str:
  return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{esc(title)}</title>
<style>{CSS}</style>
<script>{JAVASCRIPT}</script>
</head>
<body>
{custom_header_html}
<h1>{esc(title)}</h1>
{body}
</body>
</html>
"""


def anchored_source(text: str) -> str:
  """
  Render text as a <pre> block where each line carries an `L<n>` anchor.
  """
  lines = []
  for number, line in enumerate(text.split("\n"), start=1):
    lines.append(
      f'<span id="L{number}"><a class="line-anchor" href="#L{number}">{number}</a>{esc(line)}</span>'
    )
  return "<pre>" + "\n".join(lines) + "</pre>"


def table(headers: Iterable[str], rows: Iterable[Iterable[str]], table_id: Optional[str] = None) -> str:
  """Build a table; cells are taken as already-escaped HTML."""
  id_attr = f' id="{esc(table_id)}"' if table_id else ""
  head = "".join(f"<th>{esc(h)}</th>" for h in headers)
  body = "".join("<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in rows)
  return f"<table{id_attr}><tr>{head}</tr>{body}</table>"


def format_frame(frame: Any) -> str:
  """
  One stack frame as text. Frames may be dicts with interned filenames
  already resolved, or plain strings.
  """
  if isinstance(frame, dict):
    filename = frame.get("uninterned_filename") or frame.get("filename") or "(unknown)"
    line = frame.get("line", 0)
    name = frame.get("name", "")
    text = f"{filename}:{line} in {name}"
    loc = frame.get("loc")
    if loc:
      text += f"\n    {loc}"
    return text
  return str(frame)


def render_frames(frames: Optional[List[Any]]) -> str:
  if not frames:
    return '<p class="placeholder">(no stack)</p>'
  return "<pre>" + esc("\n".join(format_frame(f) for f in frames)) + "</pre>"
