"""Version Migrator: bring stored documents up to the current schema.

A migration rule is a pure function from a document and its metadata at
version ``v`` to the pair at version ``v + 1``. Rules are registered by
source version in a ``MigrationRegistry``; ``migrate`` walks the chain
one step at a time until the document is current.

Built-in chain:

    0 -> 1   wrap pre-versioning pages in an html/head/body skeleton
    1 -> 2   restore the shell elements every page needs (chat panel and
             form, thoughts div, loading overlay), link the shared theme,
             and strip CSS the theme now provides
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping

from bs4 import BeautifulSoup, Doctype, Tag

from pagesmith_pipeline.document import PARSER, Document, DocumentMetadata
from pagesmith_pipeline.errors import MigrationError

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2

MigrationRule = Callable[[Document, DocumentMetadata], tuple[Document, DocumentMetadata]]


class MigrationRegistry:
    """Migration rules keyed by source version.

    The chain must be contiguous: a rule for every version from 0 up to
    ``current_version - 1`` and nothing else.
    """

    def __init__(self, rules: Mapping[int, MigrationRule], current_version: int) -> None:
        if current_version < 0:
            raise MigrationError(f"current_version must be >= 0, got {current_version}")
        expected = set(range(current_version))
        if set(rules) != expected:
            missing = sorted(expected - set(rules))
            extra = sorted(set(rules) - expected)
            raise MigrationError(
                f"Migration chain to version {current_version} is not contiguous "
                f"(missing rules for {missing}, unexpected rules for {extra})"
            )
        self._rules = dict(rules)
        self._current_version = current_version

    @property
    def current_version(self) -> int:
        return self._current_version

    def rule_for(self, version: int) -> MigrationRule:
        rule = self._rules.get(version)
        if rule is None:
            raise MigrationError(
                f"No migration defined for version {version} -> {version + 1}",
                from_version=version,
            )
        return rule


def markup_rule(transform: Callable[[Document], Document]) -> MigrationRule:
    """Lift a markup-only transform into a rule that also bumps the version."""

    def rule(document: Document, metadata: DocumentMetadata) -> tuple[Document, DocumentMetadata]:
        migrated = transform(document)
        return migrated, metadata.model_copy(
            update={"schema_version": metadata.schema_version + 1}
        )

    rule.__name__ = transform.__name__
    rule.__doc__ = transform.__doc__
    return rule


def migrate(
    document: Document,
    metadata: DocumentMetadata,
    registry: MigrationRegistry | None = None,
) -> tuple[Document, DocumentMetadata]:
    """Apply migration rules until ``metadata.schema_version`` is current.

    A document that is already current is returned unchanged. Rules receive
    a copy of the document, so the caller's document is never mutated.

    Raises:
        MigrationError: If the stored version is newer than the registry
            knows, a rule is missing, or a rule fails or returns a result
            at the wrong version.
    """
    registry = registry or DEFAULT_REGISTRY
    version = metadata.schema_version
    if version > registry.current_version:
        raise MigrationError(
            f"Document {metadata.name!r} is at version {version}, newer than the "
            f"supported version {registry.current_version}",
            from_version=version,
        )

    while version < registry.current_version:
        rule = registry.rule_for(version)
        try:
            migrated, migrated_meta = rule(document.copy(), metadata)
        except MigrationError:
            raise
        except Exception as exc:
            raise MigrationError(
                f"Migration {version} -> {version + 1} failed: {exc}", from_version=version
            ) from exc
        if not isinstance(migrated, Document) or not isinstance(migrated_meta, DocumentMetadata):
            raise MigrationError(
                f"Migration {version} -> {version + 1} returned an invalid result",
                from_version=version,
            )
        if migrated_meta.schema_version != version + 1:
            raise MigrationError(
                f"Migration {version} -> {version + 1} produced version "
                f"{migrated_meta.schema_version}",
                from_version=version,
            )
        logger.info("Migrated %r from version %d to %d", metadata.name, version, version + 1)
        document, metadata = migrated, migrated_meta
        version += 1
    return document, metadata


# ------------------------------------------------------------------ #
# 0 -> 1: document skeleton
# ------------------------------------------------------------------ #

_HEAD_TAGS = frozenset({"title", "meta", "link", "base"})


def add_document_skeleton(document: Document) -> Document:
    """Ensure a doctype and an ``html`` element with ``head`` and ``body``."""
    soup = document.copy().tree
    html = soup.find("html")
    if html is None:
        html = soup.new_tag("html")
        for child in list(soup.contents):
            if not isinstance(child, Doctype):
                html.append(child.extract())
        soup.append(html)

    head = html.find("head", recursive=False)
    if head is None:
        head = soup.new_tag("head")
        html.insert(0, head)

    body = html.find("body", recursive=False)
    if body is None:
        body = soup.new_tag("body")
        for child in list(html.contents):
            if child is head:
                continue
            if isinstance(child, Tag) and child.name in _HEAD_TAGS:
                head.append(child.extract())
            else:
                body.append(child.extract())
        html.append(body)

    if not any(isinstance(child, Doctype) for child in soup.contents):
        soup.insert(0, Doctype("html"))
    return Document(soup)


# ------------------------------------------------------------------ #
# 1 -> 2: shared shell and theme
# ------------------------------------------------------------------ #

CHAT_FORM = """
        <form action="/" method="POST" id="chatForm">
            <input type="text" class="chat-input" id="chatInput" name="message" placeholder="Type a message...">
            <button type="submit" class="chat-submit">Send</button>
        </form>"""

DEFAULT_CHAT_PANEL = f"""
    <div class="chat-panel">
        <div class="chat-header">PageSmith</div>
        <div class="chat-messages" id="chatMessages">
            <div class="chat-message"><p>Welcome! How can I help you?</p></div>
        </div>
        <div class="link-group">
            <a href="#" id="saveLink">Save</a>
            <a href="/pages" id="pagesLink">Pages</a>
            <a href="#" id="resetLink">Reset</a>
        </div>{CHAT_FORM}
    </div>"""

THOUGHTS_DIV = '<div id="thoughts" style="display: none;"></div>'
LOADING_OVERLAY = '<div id="loadingOverlay" class="loading-overlay"><div class="spinner"></div></div>'
THEME_SCRIPT_SRC = "/api/theme-info.js"
THEME_CSS_HREF = "/api/theme.css"

# Rules for these selectors now come from the shared theme stylesheet.
SHARED_CSS_SELECTORS = (
    ":root", "*", "body", "html",
    ".chat-panel", ".chat-header", ".chat-messages",
    ".chat-message", ".chat-message p", ".chat-message p strong", ".chat-message p code",
    ".chat-message strong", ".chat-message pre", ".chat-message code", ".chat-message a",
    ".link-group", ".link-group a", ".link-group a:hover",
    "form",
    ".chat-input", ".chat-input:focus", ".chat-input::placeholder", ".chat-input:disabled",
    ".chat-submit", ".chat-submit:hover", ".chat-submit:active", ".chat-submit:disabled",
    ".chat-input-wrapper", ".chat-input-wrapper .chat-input",
    ".viewer-panel", ".viewer-panel::before", ".viewer-panel.full-viewer",
    ".loading-overlay", ".spinner", "#loadingOverlay",
    ".chat-toggle", ".chat-toggle:hover", ".chat-toggle-dots", ".chat-toggle-dot",
    ".chat-toggle:hover .chat-toggle-dot",
    "body.chat-collapsed .chat-panel", "body.chat-collapsed .chat-toggle",
    ".modal-overlay", ".modal-overlay.show", ".modal-content", ".modal-header",
    ".modal-body", ".modal-footer", ".modal-footer-right",
    ".modal-btn", ".modal-btn-primary", ".modal-btn-primary:hover",
    ".modal-btn-secondary", ".modal-btn-secondary:hover",
    ".modal-btn-danger", ".modal-btn-danger:hover",
    ".form-group", ".form-group:last-child", ".form-label",
    ".form-input", ".form-input:focus", ".form-input:read-only", ".form-input::placeholder",
    ".checkbox-label", '.checkbox-label input[type="checkbox"]', ".checkbox-label span",
)  # fmt: skip

_SHARED_RULES = tuple(
    re.compile(rf"(?:^|\n)\s*{re.escape(selector)}\s*\{{[^}}]*\}}")
    for selector in SHARED_CSS_SELECTORS
)
_THEME_KEYFRAMES = tuple(
    re.compile(rf"@keyframes\s+{name}\s*\{{(?:[^{{}}]*\{{[^{{}}]*\}})*[^{{}}]*\}}")
    for name in ("spin", "nebula-pulse")
)
_SCROLLBAR_RULE = re.compile(
    r"(?:^|\n)\s*(?:\*|body|)::-webkit-scrollbar(?:-(?:track|thumb|corner))?(?::hover)?\s*\{[^}]*\}"
)


def _nodes(html: str) -> list:
    return list(BeautifulSoup(html, PARSER).contents)


def strip_shared_css(css: str) -> str:
    """Remove rules that the shared theme stylesheet already provides."""
    for pattern in (*_SHARED_RULES, *_THEME_KEYFRAMES, _SCROLLBAR_RULE):
        css = pattern.sub("", css)
    return css


def _ensure_shell(soup: BeautifulSoup) -> None:
    body = soup.find("body") or soup

    if soup.select_one("#chatForm") is None:
        panel = soup.select_one(".chat-panel")
        if panel is not None:
            for node in _nodes(CHAT_FORM):
                panel.append(node)
        else:
            for offset, node in enumerate(_nodes(DEFAULT_CHAT_PANEL)):
                body.insert(offset, node)

    if soup.select_one("#thoughts") is None:
        for node in _nodes(THOUGHTS_DIV):
            body.append(node)

    viewer = soup.select_one(".viewer-panel")
    overlay = soup.select_one("#loadingOverlay")
    if viewer is not None:
        if overlay is None:
            for node in _nodes(LOADING_OVERLAY):
                viewer.append(node)
        elif overlay.find_parent(class_="viewer-panel") is None:
            viewer.append(overlay.extract())


def _ensure_theme_refs(soup: BeautifulSoup) -> None:
    head = soup.find("head")
    if head is None:
        head = soup.new_tag("head")
        (soup.find("html") or soup).insert(0, head)

    script = soup.find("script", src=THEME_SCRIPT_SRC)
    if script is None:
        script = soup.new_tag("script", src=THEME_SCRIPT_SRC)
        title = soup.find("title")
        if title is not None:
            title.insert_after(script)
        else:
            head.insert(0, script)

    if soup.find("link", href=THEME_CSS_HREF) is None:
        script.insert_after(soup.new_tag("link", rel="stylesheet", href=THEME_CSS_HREF))


def _strip_redundant_blocks(soup: BeautifulSoup) -> None:
    for style in soup.find_all("style"):
        css = strip_shared_css(style.string or "")
        if css.strip():
            style.string = css
        else:
            style.extract()
    for script in soup.find_all("script"):
        if not script.get("src") and not (script.string or "").strip():
            script.extract()


def apply_shared_theme(document: Document) -> Document:
    """Restore the required shell, link the shared theme, and drop theme CSS."""
    soup = document.copy().tree
    _ensure_shell(soup)
    _ensure_theme_refs(soup)
    _strip_redundant_blocks(soup)
    return Document(soup)


BUILTIN_RULES: dict[int, MigrationRule] = {
    0: markup_rule(add_document_skeleton),
    1: markup_rule(apply_shared_theme),
}

DEFAULT_REGISTRY = MigrationRegistry(BUILTIN_RULES, CURRENT_SCHEMA_VERSION)
