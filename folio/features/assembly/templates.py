"""Stylesheet fragments for assembled documents."""

from string import Template

from folio.models.template import StyleParameters

DEFAULT_STYLE = StyleParameters()

BASE_CSS = Template("""\
* { margin: 0; padding: 0; box-sizing: border-box; }
body {
  font-family: $font_family;
  font-size: $font_size;
  line-height: $line_height;
  max-width: $max_width;
  margin: 0 auto;
  padding: 2rem;
  color: #1a1a1a;
  background: #ffffff;
}
.skip-to-content { position: absolute; top: -40px; left: 0; background: #000; color: #fff; padding: 8px; z-index: 100; }
.skip-to-content:focus { top: 0; }
.cover { text-align: center; padding: 4rem 0; page-break-after: always; }
.cover-image { max-width: 400px; height: auto; margin-bottom: 2rem; }
.cover-placeholder { width: 400px; max-width: 100%; height: 560px; margin: 0 auto 2rem; border: 2px solid #1a1a1a; display: flex; align-items: center; justify-content: center; }
.cover h1 { font-size: 3rem; margin-bottom: 1rem; }
.cover .author { font-size: 1.5rem; color: #666; }
.cover .publisher { font-size: 1rem; color: #999; }
.copyright { font-size: 0.9rem; color: #666; padding: 2rem 0; page-break-after: always; }
.toc { padding: 2rem 0; page-break-after: always; }
.toc h2 { font-size: 2rem; margin-bottom: 2rem; }
.toc ol { list-style: none; }
.toc li { margin-bottom: 0.75rem; }
.toc a { color: #333; text-decoration: none; border-bottom: 1px dotted #999; }
.chapter { margin-bottom: 4rem; page-break-before: always; }
.chapter > h2 { font-size: $chapter_title_size; margin-bottom: 2rem; padding-bottom: 0.5rem; border-bottom: 2px solid #e0e0e0; }
.chapter-content { text-align: $text_align; }
.chapter-content p { margin-bottom: 1.2rem; }
.chapter-content ul, .chapter-content ol { margin: 1rem 0 1rem 2rem; }
.chapter-content blockquote { margin: 1.5rem 2rem; padding: 1rem; background: #f5f5f5; border-left: 4px solid #666; font-style: italic; }
.chapter-content code { background: #f5f5f5; padding: 0.2rem 0.4rem; border-radius: 3px; font-family: 'Courier New', monospace; font-size: 0.9em; }
.chapter-content pre { background: #f5f5f5; padding: 1rem; overflow-x: auto; margin: 1rem 0; }
.chapter-content pre code { background: none; padding: 0; }
.chapter-content a { color: #0066cc; text-decoration: underline; }
.back-matter { text-align: center; font-style: italic; margin-top: 3rem; }
@media print {
  body { font-size: 12pt; line-height: 1.6; }
  a { color: #000; text-decoration: none; }
}
@media (prefers-contrast: high) {
  body { background: #000; color: #fff; }
  .chapter-content blockquote { background: #333; border-left-color: #fff; }
}
@media (prefers-reduced-motion: reduce) {
  * { animation: none !important; transition: none !important; }
}
""")

WATERMARK_CSS = """\
.watermark {
  position: fixed;
  top: 50%;
  left: 50%;
  transform: translate(-50%, -50%) rotate(-45deg);
  font-size: 4rem;
  color: rgba(0, 0, 0, 0.05);
  pointer-events: none;
  user-select: none;
  white-space: nowrap;
  z-index: 9999;
}
@media print { .watermark { color: rgba(0, 0, 0, 0.08); } }
"""


def _css_value(value: str) -> str:
    return "".join(ch for ch in str(value) if ch not in "<>{};\\")


def render_css(style: StyleParameters, watermark: bool) -> str:
    css = BASE_CSS.substitute(
        font_family=_css_value(style.font_family),
        font_size=_css_value(style.font_size),
        line_height=_css_value(style.line_height),
        max_width=_css_value(style.max_width),
        text_align=_css_value(style.text_align),
        chapter_title_size=_css_value(style.chapter_title_size),
    )
    if watermark:
        css += WATERMARK_CSS
    return css
