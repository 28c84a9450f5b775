"""
Report renderer: generate text/Markdown/CSV/JSON/HTML listings from result rows.
Rows are plain dicts (see the to_dict() methods of the models); HTML uses report/templates/report.html.j2.
"""

from typing import Optional, List, Dict, Any
import os
import json
import io
import csv

from jinja2 import Environment, FileSystemLoader, select_autoescape

Row = Dict[str, Any]


def _columns(rows: List[Row], columns: Optional[List[str]] = None) -> List[str]:
    """Explicit columns, else the keys of all rows in first-seen order."""
    if columns:
        return list(columns)
    cols: List[str] = []
    for row in rows:
        for key in row:
            if key not in cols:
                cols.append(key)
    return cols


def _cell(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        return ', '.join(str(v) for v in value)
    return str(value)


def render_text(rows: List[Row], title: str = '', columns: Optional[List[str]] = None) -> str:
    """Render an aligned plain-text table."""
    cols = _columns(rows, columns)
    lines = [title] if title else []
    if not rows:
        lines.append('(no rows)')
        return '\n'.join(lines)
    widths = [max([len(c)] + [len(_cell(r.get(c))) for r in rows]) for c in cols]
    lines.append('  '.join(c.ljust(w) for c, w in zip(cols, widths)).rstrip())
    lines.append('  '.join('-' * w for w in widths))
    for r in rows:
        lines.append('  '.join(_cell(r.get(c)).ljust(w) for c, w in zip(cols, widths)).rstrip())
    return '\n'.join(lines)


def _md_escape(text: str) -> str:
    return text.replace('|', '\\|').replace('\n', ' ')


def render_markdown(rows: List[Row], title: str = '', columns: Optional[List[str]] = None) -> str:
    """Render a Markdown section with a pipe table."""
    cols = _columns(rows, columns)
    md = []
    if title:
        md.append(f"# {title}\n")
    if not rows:
        md.append("_No rows._")
        return "\n".join(md)
    md.append("| " + " | ".join(cols) + " |")
    md.append("|" + "|".join("---" for _ in cols) + "|")
    for r in rows:
        md.append("| " + " | ".join(_md_escape(_cell(r.get(c))) for c in cols) + " |")
    return "\n".join(md)


def render_csv(rows: List[Row], columns: Optional[List[str]] = None) -> str:
    """Render CSV with a header row."""
    cols = _columns(rows, columns)
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(cols)
    for r in rows:
        writer.writerow([_cell(r.get(c)) for c in cols])
    return output.getvalue()


def render_json(rows: List[Row]) -> str:
    """Export the rows as JSON."""
    return json.dumps(rows or [], indent=2, default=str)


def render_html(rows: List[Row], title: str = '', columns: Optional[List[str]] = None, generated_at: Optional[str] = None, scope: Optional[str] = None) -> str:
    """Render the report.html.j2 template."""
    tmpl_dir = os.path.join(os.path.dirname(__file__), 'templates')
    env = Environment(loader=FileSystemLoader(tmpl_dir), autoescape=select_autoescape(['html', 'xml', 'j2']))
    tmpl = env.get_template('report.html.j2')
    cols = _columns(rows, columns)
    context = {
        'title': title,
        'columns': cols,
        'rows': [[_cell(r.get(c)) for c in cols] for r in rows],
        'generated_at': generated_at,
        'scope': scope,
    }
    return tmpl.render(**context)


def render(
    rows: Optional[List[Row]] = None,
    fmt: str = 'text',
    title: str = '',
    columns: Optional[List[str]] = None,
    generated_at: Optional[str] = None,
    scope: Optional[str] = None,
) -> str:
    """Main render function. Unknown formats fall back to text."""
    rows = rows or []
    fmt_l = (fmt or 'text').lower()
    if fmt_l in ('md', 'markdown'):
        return render_markdown(rows, title, columns)
    if fmt_l == 'csv':
        return render_csv(rows, columns)
    if fmt_l in ('html', 'htm'):
        return render_html(rows, title, columns, generated_at, scope)
    if fmt_l in ('json', 'js'):
        return render_json(rows)
    return render_text(rows, title, columns)
