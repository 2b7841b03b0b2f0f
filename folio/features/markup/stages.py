"""
Markup stages (lightweight markup -> semantic HTML).

Each stage is a pure `str -> str` function. They run in the fixed order of
PIPELINE; later stages rely on the output shape of earlier ones, so the order
is part of the contract.
"""

import re
from dataclasses import dataclass
from typing import Callable, List


@dataclass(frozen=True)
class MarkupStage:
    name: str
    apply: Callable[[str], str]


def escape_text(text: str) -> str:
    """Neutralise author-supplied tags. `>` is kept so blockquote markers survive."""
    return text.replace("\x00", "").replace("&", "&amp;").replace("<", "&lt;")


_HEADER = re.compile(r"^(#{1,3})[ \t]+(.+?)[ \t]*$", re.MULTILINE)


def block_headers(text: str) -> str:
    def _render(match: re.Match) -> str:
        level = len(match.group(1))
        return f"<h{level}>{match.group(2)}</h{level}>"

    return _HEADER.sub(_render, text)


def _emphasis(width: int, tag_open: str, tag_close: str) -> Callable[[str], str]:
    # A marker followed by whitespace never opens; `_` runs inside words stay literal.
    star = re.compile(r"\*{%d}(?=\S)(.+?)(?<=\S)\*{%d}" % (width, width))
    underscore = re.compile(r"(?<!\w)_{%d}(?=\S)(.+?)(?<=\S)_{%d}(?!\w)" % (width, width))

    def _apply(text: str) -> str:
        text = star.sub(lambda m: f"{tag_open}{m.group(1)}{tag_close}", text)
        return underscore.sub(lambda m: f"{tag_open}{m.group(1)}{tag_close}", text)

    return _apply


triple_emphasis = _emphasis(3, "<strong><em>", "</em></strong>")
double_emphasis = _emphasis(2, "<strong>", "</strong>")
single_emphasis = _emphasis(1, "<em>", "</em>")


_LINK = re.compile(r"\[([^\]\n]+)\]\(([^)\s]+)\)")
_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:")
# Author `<` is escaped before this stage, so any tag in a URL came from the emphasis stages.
_TAG = re.compile(r"</?[a-z]+>")


def _safe_href(url: str) -> str:
    url = _TAG.sub("", url)
    if url.strip().lower().startswith(_UNSAFE_SCHEMES):
        return "#"
    return url.replace('"', "&quot;")


def links(text: str) -> str:
    return _LINK.sub(lambda m: f'<a href="{_safe_href(m.group(2))}">{m.group(1)}</a>', text)


def _wrap_runs(text: str, item: re.Pattern, container: str) -> str:
    """Turn item lines into <li>, wrapping each maximal run of adjacent items in one container."""
    out: List[str] = []
    run: List[str] = []

    def _flush():
        if run:
            out.append(f"<{container}>" + "".join(f"<li>{i}</li>" for i in run) + f"</{container}>")
            run.clear()

    for line in text.split("\n"):
        match = item.match(line)
        if match:
            run.append(match.group(1))
        else:
            _flush()
            out.append(line)
    _flush()
    return "\n".join(out)


_UNORDERED_ITEM = re.compile(r"^[-*][ \t]+(.+)$")
_ORDERED_ITEM = re.compile(r"^\d+\.[ \t]+(.+)$")


def unordered_lists(text: str) -> str:
    return _wrap_runs(text, _UNORDERED_ITEM, "ul")


def ordered_lists(text: str) -> str:
    return _wrap_runs(text, _ORDERED_ITEM, "ol")


_QUOTE = re.compile(r"^>[ \t]+(.+)$", re.MULTILINE)


def blockquotes(text: str) -> str:
    return _QUOTE.sub(r"<blockquote>\1</blockquote>", text)


# Unterminated fences never match and stay literal.
_FENCE = re.compile(r"^```[ \t]*([\w+#.-]*)[ \t]*\n(.*?)\n?^```[ \t]*$", re.MULTILINE | re.DOTALL)


def fenced_code(text: str) -> str:
    def _render(match: re.Match) -> str:
        lang = match.group(1)
        cls = f' class="language-{lang}"' if lang else ""
        return f"<pre><code{cls}>{match.group(2)}</code></pre>"

    return _FENCE.sub(_render, text)


_INLINE_CODE = re.compile(r"`([^`\n]+)`")


def inline_code(text: str) -> str:
    return _INLINE_CODE.sub(r"<code>\1</code>", text)


_PRE_BLOCK = re.compile(r"<pre>.*?</pre>", re.DOTALL)
_BLOCK_LINE = re.compile(r"^<(?:h[1-6]|ul|ol|li|blockquote|pre|hr|div|table)\b")
_PLACEHOLDER = "\x00pre{}\x00"
_PLACEHOLDER_LINE = re.compile(r"^\x00pre(\d+)\x00$")


def paragraphs(text: str) -> str:
    """
    Blank-line separated blocks become <p>; single newlines inside a paragraph become <br>.

    Block-level lines are emitted as they are, and <pre> blocks are held out
    entirely so their newlines are never touched.
    """
    held: List[str] = []

    def _hold(match: re.Match) -> str:
        held.append(match.group(0))
        return "\n" + _PLACEHOLDER.format(len(held) - 1) + "\n"

    text = _PRE_BLOCK.sub(_hold, text)

    out: List[str] = []
    for block in re.split(r"\n[ \t]*\n", text):
        pending: List[str] = []
        for line in block.split("\n"):
            stripped = line.strip()
            if not stripped:
                continue
            placeholder = _PLACEHOLDER_LINE.match(stripped)
            if placeholder or _BLOCK_LINE.match(stripped):
                if pending:
                    out.append("<p>" + "<br>".join(pending) + "</p>")
                    pending = []
                out.append(held[int(placeholder.group(1))] if placeholder else stripped)
            else:
                pending.append(stripped)
        if pending:
            out.append("<p>" + "<br>".join(pending) + "</p>")
    return "\n".join(out)


PIPELINE = (
    MarkupStage("escape", escape_text),
    MarkupStage("headers", block_headers),
    MarkupStage("triple_emphasis", triple_emphasis),
    MarkupStage("double_emphasis", double_emphasis),
    MarkupStage("single_emphasis", single_emphasis),
    MarkupStage("links", links),
    MarkupStage("unordered_lists", unordered_lists),
    MarkupStage("ordered_lists", ordered_lists),
    MarkupStage("blockquotes", blockquotes),
    MarkupStage("fenced_code", fenced_code),
    MarkupStage("inline_code", inline_code),
    MarkupStage("paragraphs", paragraphs),
)
