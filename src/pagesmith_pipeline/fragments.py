"""Well-formedness check for HTML fragments returned by the provider.

The tree builder silently repairs broken markup, so a truncated or
mismatched fragment would otherwise be applied in some repaired shape.
``check_fragment`` walks the fragment with the same stdlib tokenizer the
tree builder uses and rejects what it would have had to repair.
"""

from __future__ import annotations

import re
from html.parser import HTMLParser

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)  # fmt: skip

# Elements whose end tag may be omitted in valid HTML.
OPTIONAL_END = frozenset(
    {
        "p", "li", "dt", "dd", "option", "optgroup", "tr", "td", "th",
        "thead", "tbody", "tfoot", "colgroup", "caption", "rb", "rt", "rp",
        "html", "head", "body",
    }
)  # fmt: skip

# Elements whose content is text, never markup.
RAW_TEXT_ELEMENTS = frozenset({"script", "style", "textarea", "title"})
_TAG_START = re.compile(r"<[A-Za-z/!]")


class FragmentError(ValueError):
    """The fragment is not well-formed."""


class _FragmentScanner(HTMLParser):
    def __init__(self) -> None:
        # Entities stay unconverted so escaped text like "&lt;b" is not
        # mistaken for a broken tag.
        super().__init__(convert_charrefs=False)
        self.stack: list[str] = []
        self.error: str | None = None

    def _fail(self, message: str) -> None:
        if self.error is None:
            self.error = message

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag not in VOID_ELEMENTS:
            self.stack.append(tag)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        pass

    def handle_endtag(self, tag: str) -> None:
        if tag in VOID_ELEMENTS:
            return
        if tag not in self.stack:
            self._fail(f"stray end tag </{tag}>")
            return
        while self.stack:
            open_tag = self.stack.pop()
            if open_tag == tag:
                return
            if open_tag not in OPTIONAL_END:
                self._fail(f"</{tag}> closes unclosed <{open_tag}>")
                return

    def handle_data(self, data: str) -> None:
        if self.stack and self.stack[-1] in RAW_TEXT_ELEMENTS:
            return
        if _TAG_START.search(data):
            self._fail("truncated tag in text")


def check_fragment(html: str) -> None:
    """Raise FragmentError unless ``html`` is a non-empty, balanced fragment."""
    if not isinstance(html, str) or not html.strip():
        raise FragmentError("empty fragment")
    scanner = _FragmentScanner()
    scanner.feed(html)
    # A tag or comment still buffered after feed() never terminated.
    if _TAG_START.search(scanner.rawdata):
        raise FragmentError("truncated markup at end of fragment")
    scanner.close()
    if scanner.error is not None:
        raise FragmentError(scanner.error)
    unclosed = [t for t in scanner.stack if t not in OPTIONAL_END]
    if unclosed:
        raise FragmentError(f"unclosed <{unclosed[-1]}>")


def is_well_formed(html: str) -> bool:
    try:
        check_fragment(html)
    except FragmentError:
        return False
    return True
