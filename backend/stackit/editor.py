"""
StackIt Backend — Rich-Text Editor Model
==========================================

What:  A small command-pattern document model for question and answer bodies.
How:   `EditorState` holds a list of blocks (paragraph / bullet / ordered /
       code), each a list of inline runs or images. Commands are frozen
       dataclasses; `EditorState.apply()` snapshots the blocks before running
       a command so `undo()` can restore them.

Commands:
    InsertText(text)            text at the end of the current block, current marks
    ToggleMark(mark)            bold | italic | underline | strike | code
    SetBlock(kind)              paragraph | bullet | ordered | code
    SetAlignment(alignment)     left | center | right
    InsertLink(url, text)       http(s) / mailto only
    InsertImage(src, alt)       http(s) URL or data:image/ URL
    InsertEmoji(emoji)
    NewParagraph()              continues a list, otherwise a plain paragraph

`render_html()` produces the HTML stored in `question_description`; every
text node and attribute is escaped. `html_to_text()` gives the text content
of stored HTML (used for the description length rule and feed search).
`sanitize_html()` cuts HTML submitted directly by clients down to the same
tags and attributes before it is stored.
"""

import copy
import html
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Union

import bleach
from bleach.css_sanitizer import CSSSanitizer
from bs4 import BeautifulSoup

from stackit.exceptions import ValidationError

MARKS = ("bold", "italic", "underline", "strike", "code")
BLOCK_KINDS = ("paragraph", "bullet", "ordered", "code")
ALIGNMENTS = ("left", "center", "right")

_MARK_TAGS = {
    "bold": "strong",
    "italic": "em",
    "underline": "u",
    "strike": "s",
    "code": "code",
}

_LINK_SCHEMES = ("http://", "https://", "mailto:")
_IMAGE_SCHEMES = ("http://", "https://", "data:image/")


# ── Document Model ─────────────────────────────────────────────────────────


@dataclass
class TextRun:
    text: str
    marks: FrozenSet[str] = frozenset()
    href: Optional[str] = None


@dataclass
class ImageNode:
    src: str
    alt: str = ""


Inline = Union[TextRun, ImageNode]


@dataclass
class Block:
    kind: str = "paragraph"
    alignment: str = "left"
    inlines: List[Inline] = field(default_factory=list)


class EditorState:
    """Mutable editor document with an undo stack."""

    def __init__(self) -> None:
        self.blocks: List[Block] = [Block()]
        self.active_marks: FrozenSet[str] = frozenset()
        self._history: List[tuple] = []

    @property
    def current_block(self) -> Block:
        return self.blocks[-1]

    def apply(self, command: "EditorCommand") -> "EditorState":
        self._history.append((copy.deepcopy(self.blocks), self.active_marks))
        try:
            command.execute(self)
        except ValidationError:
            # A rejected command leaves no trace in history
            self.blocks, self.active_marks = self._history.pop()
            raise
        return self

    def undo(self) -> bool:
        if not self._history:
            return False
        self.blocks, self.active_marks = self._history.pop()
        return True

    def append_inline(self, inline: Inline) -> None:
        inlines = self.current_block.inlines
        if (
            isinstance(inline, TextRun)
            and inlines
            and isinstance(inlines[-1], TextRun)
            and inlines[-1].marks == inline.marks
            and inlines[-1].href is None
            and inline.href is None
        ):
            inlines[-1].text += inline.text
        else:
            inlines.append(inline)

    def render_html(self) -> str:
        return render_blocks(self.blocks)

    def plain_text(self) -> str:
        return "\n".join(
            "".join(i.text for i in block.inlines if isinstance(i, TextRun))
            for block in self.blocks
        )

    def is_empty(self) -> bool:
        return not self.plain_text().strip() and not any(
            isinstance(i, ImageNode) for block in self.blocks for i in block.inlines
        )


# ── Commands ───────────────────────────────────────────────────────────────


class EditorCommand:
    """Base class; subclasses mutate the state in `execute()`."""

    def execute(self, state: EditorState) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class InsertText(EditorCommand):
    text: str

    def execute(self, state: EditorState) -> None:
        lines = self.text.split("\n")
        for index, line in enumerate(lines):
            if index:
                NewParagraph().execute(state)
            if line:
                state.append_inline(TextRun(text=line, marks=state.active_marks))


@dataclass(frozen=True)
class ToggleMark(EditorCommand):
    mark: str

    def execute(self, state: EditorState) -> None:
        if self.mark not in MARKS:
            raise ValidationError(message=f"Unknown format '{self.mark}'", field="description")
        state.active_marks = state.active_marks ^ {self.mark}


@dataclass(frozen=True)
class SetBlock(EditorCommand):
    kind: str

    def execute(self, state: EditorState) -> None:
        if self.kind not in BLOCK_KINDS:
            raise ValidationError(message=f"Unknown block type '{self.kind}'", field="description")
        state.current_block.kind = self.kind


@dataclass(frozen=True)
class SetAlignment(EditorCommand):
    alignment: str

    def execute(self, state: EditorState) -> None:
        if self.alignment not in ALIGNMENTS:
            raise ValidationError(message=f"Unknown alignment '{self.alignment}'", field="description")
        state.current_block.alignment = self.alignment


@dataclass(frozen=True)
class InsertLink(EditorCommand):
    url: str
    text: str = ""

    def execute(self, state: EditorState) -> None:
        url = self.url.strip()
        if not url.lower().startswith(_LINK_SCHEMES):
            raise ValidationError(message="Links must start with http://, https:// or mailto:", field="description")
        state.append_inline(TextRun(text=self.text or url, marks=state.active_marks, href=url))


@dataclass(frozen=True)
class InsertImage(EditorCommand):
    src: str
    alt: str = ""

    def execute(self, state: EditorState) -> None:
        if not self.src.lower().startswith(_IMAGE_SCHEMES):
            raise ValidationError(message="Unsupported image source", field="description")
        state.append_inline(ImageNode(src=self.src, alt=self.alt))


@dataclass(frozen=True)
class InsertEmoji(EditorCommand):
    emoji: str

    def execute(self, state: EditorState) -> None:
        state.append_inline(TextRun(text=self.emoji, marks=state.active_marks))


@dataclass(frozen=True)
class NewParagraph(EditorCommand):
    def execute(self, state: EditorState) -> None:
        previous = state.current_block
        kind = previous.kind if previous.kind in ("bullet", "ordered") else "paragraph"
        state.blocks.append(Block(kind=kind, alignment=previous.alignment))


_COMMANDS = {
    "insert_text": (InsertText, ("text",)),
    "toggle_mark": (ToggleMark, ("mark",)),
    "set_block": (SetBlock, ("kind",)),
    "set_alignment": (SetAlignment, ("alignment",)),
    "insert_link": (InsertLink, ("url", "text")),
    "insert_image": (InsertImage, ("src", "alt")),
    "insert_emoji": (InsertEmoji, ("emoji",)),
    "new_paragraph": (NewParagraph, ()),
}


def command_from_dict(payload: Dict[str, Any]) -> EditorCommand:
    """
    Decode one JSON command, e.g. {"type": "toggle_mark", "mark": "bold"}.

    Raises:
        ValidationError: unknown type or missing argument.
    """
    command_type = payload.get("type")
    if command_type not in _COMMANDS:
        raise ValidationError(message=f"Unknown editor command '{command_type}'", field="description")
    command_cls, arg_names = _COMMANDS[command_type]
    kwargs = {name: payload[name] for name in arg_names if name in payload}
    try:
        return command_cls(**kwargs)
    except TypeError:
        raise ValidationError(message=f"Invalid arguments for '{command_type}'", field="description")


def build_document(commands: List[Dict[str, Any]]) -> EditorState:
    state = EditorState()
    for payload in commands:
        state.apply(command_from_dict(payload))
    return state


# ── Rendering ──────────────────────────────────────────────────────────────


def _render_inline(inline: Inline) -> str:
    if isinstance(inline, ImageNode):
        return f'<img src="{html.escape(inline.src)}" alt="{html.escape(inline.alt)}">'
    rendered = html.escape(inline.text)
    for mark in MARKS:
        if mark in inline.marks:
            tag = _MARK_TAGS[mark]
            rendered = f"<{tag}>{rendered}</{tag}>"
    if inline.href:
        rendered = f'<a href="{html.escape(inline.href)}">{rendered}</a>'
    return rendered


def render_blocks(blocks: List[Block]) -> str:
    parts: List[str] = []
    open_list: Optional[str] = None

    for block in blocks:
        style = f' style="text-align: {block.alignment}"' if block.alignment != "left" else ""
        content = "".join(_render_inline(i) for i in block.inlines)

        list_tag = {"bullet": "ul", "ordered": "ol"}.get(block.kind)
        if open_list and list_tag != open_list:
            parts.append(f"</{open_list}>")
            open_list = None
        if list_tag and open_list is None:
            parts.append(f"<{list_tag}>")
            open_list = list_tag

        if list_tag:
            parts.append(f"<li{style}>{content}</li>")
        elif block.kind == "code":
            parts.append(f"<pre{style}><code>{content}</code></pre>")
        else:
            parts.append(f"<p{style}>{content}</p>")

    if open_list:
        parts.append(f"</{open_list}>")
    return "".join(parts)


def html_to_text(markup: str) -> str:
    """Text content of an HTML fragment (tags dropped, entities decoded)."""
    if not markup:
        return ""
    return BeautifulSoup(markup, "html.parser").get_text()


# ── Sanitising Submitted HTML ──────────────────────────────────────────────

ALLOWED_TAGS = frozenset(
    {"p", "br", "strong", "em", "u", "s", "code", "pre", "ul", "ol", "li", "a", "img"}
)
_ALIGNABLE_TAGS = ("p", "li", "pre")
_css_sanitizer = CSSSanitizer(allowed_css_properties=["text-align"])


def _allow_attribute(tag: str, name: str, value: str) -> bool:
    if tag == "a":
        return name == "href" and value.lower().startswith(_LINK_SCHEMES)
    if tag == "img":
        if name == "src":
            return value.lower().startswith(_IMAGE_SCHEMES)
        return name == "alt"
    return tag in _ALIGNABLE_TAGS and name == "style"


def sanitize_html(markup: str) -> str:
    """
    Reduce client-supplied HTML to what `render_html()` can produce.

    Tags outside ALLOWED_TAGS are stripped (their text is kept, escaped),
    links keep only http(s)/mailto targets, images only http(s) or
    data:image/ sources, and `style` keeps only `text-align`.
    """
    if not markup:
        return ""
    return bleach.clean(
        markup,
        tags=ALLOWED_TAGS,
        attributes=_allow_attribute,
        protocols={"http", "https", "mailto", "data"},
        css_sanitizer=_css_sanitizer,
        strip=True,
        strip_comments=True,
    )
