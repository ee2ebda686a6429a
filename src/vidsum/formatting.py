import re

from markupsafe import Markup, escape

_BOLD_ITALIC_RE = re.compile(r"\*\*\*\s*(.*?)\s*\*\*\*", re.S)
_BOLD_STAR_RE = re.compile(r"\*\*\s*(.*?)\s*\*\*", re.S)
_BOLD_UNDERSCORE_RE = re.compile(r"__\s*(.*?)\s*__", re.S)
_ITALIC_STAR_RE = re.compile(r"(^|[^*])\*\s*([^*].*?)\s*\*(?!\*)", re.S)
_ITALIC_UNDERSCORE_RE = re.compile(r"(^|[^_])_(?!_)\s*(.*?)\s*_(?!_)", re.S)
_TIMESTAMP_RE = re.compile(r"\[(\d{1,2}:\d{2}(?::\d{2})?)\]")

_HEADING_RE = re.compile(r"^(#+)\s+")
_BOLD_LINE_RE = re.compile(r"^\*?\s*(\*\*.+\*\*)\s*\*?$", re.S)
_BULLET_RE = re.compile(r"^[-*•]\s+")
_LIST_RUN_RE = re.compile(r"(?:<li>.*?</li>\n?)+", re.S)


def to_inline_html(raw: str) -> str:
    s = str(escape(raw))
    s = _BOLD_ITALIC_RE.sub(r"<em><strong>\1</strong></em>", s)
    s = _BOLD_STAR_RE.sub(r"<strong>\1</strong>", s)
    s = _BOLD_UNDERSCORE_RE.sub(r"<strong>\1</strong>", s)
    s = _ITALIC_STAR_RE.sub(r"\1<em>\2</em>", s)
    s = _ITALIC_UNDERSCORE_RE.sub(r"\1<em>\2</em>", s)
    s = _TIMESTAMP_RE.sub(r'<span class="timestamp">[\1]</span>', s)
    return s


def render_rich_summary(text: str) -> str:
    """
    Renders the markdown-ish text LLMs produce as a small HTML fragment.

    Only what summaries actually contain is handled: ``#`` headings, lines that
    are a single bold phrase (used as sub-headings), ``-``/``*``/``•`` bullets,
    inline bold/italic and ``[m:ss]`` timestamps. Everything else becomes a
    paragraph. Input text is HTML-escaped before any markup is added.
    """
    html = []
    for original in text.splitlines():
        line = original.strip()
        if not line:
            html.append("")
            continue

        heading = _HEADING_RE.match(line)
        if heading:
            level = min(6, len(heading.group(1)))
            html.append(f"<h{level}>{to_inline_html(line[heading.end():])}</h{level}>")
            continue

        bold_line = _BOLD_LINE_RE.match(line)
        if bold_line:
            html.append(f"<h3>{to_inline_html(bold_line.group(1))}</h3>")
            continue

        if _BULLET_RE.match(line):
            html.append(f"<li>{to_inline_html(_BULLET_RE.sub('', line, count=1))}</li>")
            continue

        html.append(f"<p>{to_inline_html(line)}</p>")

    return _LIST_RUN_RE.sub(
        lambda m: f'<ul class="list">\n{m.group(0)}\n</ul>\n', "\n".join(html)
    )


def strip_html(html: str) -> str:
    """
    Returns the plain text of a rendered summary, one line per block element.

    Whitespace inside a line is collapsed and lines left empty by wrapper tags
    are dropped.
    """
    lines = (Markup(line).striptags() for line in html.splitlines())
    return "\n".join(line for line in lines if line)
