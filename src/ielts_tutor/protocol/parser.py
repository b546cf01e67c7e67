"""Scanner for the directive markup embedded in tutor text.

Grammar (anything that does not match is literal prose)::

    turn       := (prose | block | inline | TERMINAL)*
    block      := "[PASSAGE]" body "[/PASSAGE]" | "[SCRIPT]" body "[/SCRIPT]"
    inline     := "[" tag "]"            ; no "[", "]" or newline inside
    tag        := "BLANK:" digits
                | "TFNG:" digits ":" statement
                | "CORRECTION:" category "|" original "|" corrected "|" explanation

Blocks do not nest; inline directives and the terminal token are recognised
inside block bodies and inline tags.
"""

import structlog

from ielts_tutor.protocol.directives import (
    TERMINAL_TOKEN,
    Blank,
    Correction,
    CorrectionCategory,
    Directive,
    ParsedTurn,
    Passage,
    Script,
    Segment,
    Terminal,
    TrueFalseNotGiven,
)

logger = structlog.get_logger()

PASSAGE_OPEN, PASSAGE_CLOSE = "[PASSAGE]", "[/PASSAGE]"
SCRIPT_OPEN, SCRIPT_CLOSE = "[SCRIPT]", "[/SCRIPT]"

_CATEGORIES = {c.value: c for c in CorrectionCategory}


def parse_turn(text: str) -> ParsedTurn:
    """Parse a raw tutor turn into directives, display text and speech text.

    Args:
        text: Raw tutor text.

    Returns:
        ParsedTurn. Text without directives yields no directives and a
        display text equal to the input.
    """
    scanner = _Scanner(text, allow_blocks=True)
    scanner.run()
    parsed = ParsedTurn(
        segments=scanner.segments,
        directives=scanner.directives,
        display_text="".join(s.text for s in scanner.segments),
        speech_text=" ".join("".join(scanner.speech).split()),
    )
    if parsed.directives:
        logger.debug(
            "tutor_turn_parsed",
            directives=[d.kind for d in parsed.directives],
            complete=parsed.complete,
        )
    return parsed


def _is_digits(value: str) -> bool:
    return value.isascii() and value.isdigit()


def _inline_directive(content: str) -> Directive | None:
    """Interpret the text between ``[`` and ``]``; None if it is not a directive."""
    tag, sep, rest = content.partition(":")
    if not sep:
        return None

    if tag == "BLANK":
        return Blank(id=rest) if _is_digits(rest) else None

    if tag == "TFNG":
        qid, sep, statement = rest.partition(":")
        if not sep or not _is_digits(qid) or not statement.strip():
            return None
        return TrueFalseNotGiven(id=qid, statement=statement)

    if tag == "CORRECTION":
        fields = rest.split("|")
        if len(fields) != 4:
            return None
        category = _CATEGORIES.get(fields[0].strip().lower())
        original, corrected, explanation = (f.strip() for f in fields[1:])
        if category is None or not original or not corrected:
            return None
        return Correction(
            category=category,
            original=original,
            corrected=corrected,
            explanation=explanation,
        )

    return None


class _Scanner:
    """Single left-to-right pass producing segments, directives and speech text."""

    def __init__(self, text: str, allow_blocks: bool):
        self.text = text
        self.allow_blocks = allow_blocks
        self.pos = 0
        self.directives: list[Directive] = []
        self.segments: list[Segment] = []
        self.speech: list[str] = []
        self._prose: list[str] = []

    def run(self) -> None:
        text = self.text
        while self.pos < len(text):
            nxt = self._next_candidate()
            if nxt > self.pos:
                self._emit_prose(text[self.pos:nxt])
                self.pos = nxt
                continue
            if text.startswith(TERMINAL_TOKEN, self.pos):
                self.directives.append(Terminal())
                self.pos += len(TERMINAL_TOKEN)
                continue
            if not self._try_block() and not self._try_inline():
                # Malformed: the bracket is plain text, keep scanning after it.
                self._emit_prose(text[self.pos])
                self.pos += 1
        self._flush_prose()

    def _next_candidate(self) -> int:
        """Position of the next ``[`` or terminal token (or end of text)."""
        candidates = [
            i
            for i in (
                self.text.find("[", self.pos),
                self.text.find(TERMINAL_TOKEN, self.pos),
            )
            if i != -1
        ]
        return min(candidates) if candidates else len(self.text)

    def _emit_prose(self, chunk: str) -> None:
        self._prose.append(chunk)
        self.speech.append(chunk)

    def _flush_prose(self) -> None:
        self.segments.append(Segment(kind="prose", text="".join(self._prose)))
        self._prose = []

    def _try_block(self) -> bool:
        if not self.allow_blocks:
            return False
        for opener, closer in ((PASSAGE_OPEN, PASSAGE_CLOSE), (SCRIPT_OPEN, SCRIPT_CLOSE)):
            if not self.text.startswith(opener, self.pos):
                continue
            start = self.pos + len(opener)
            end = self.text.find(closer, start)
            if end == -1:
                return False
            body = self.text[start:end]
            self.pos = end + len(closer)
            if opener == PASSAGE_OPEN:
                self._passage(body)
            else:
                self._script(body)
            return True
        return False

    def _passage(self, body: str) -> None:
        inner = _Scanner(body, allow_blocks=False)
        inner.run()
        display_body = "".join(s.text for s in inner.segments)
        self.directives.append(Passage(body=display_body))
        self.directives.extend(inner.directives)
        self._flush_prose()
        self.segments.append(Segment(kind="passage", text=display_body))
        # Passage bodies are read on screen, not aloud.
        self.speech.append(" ")

    def _script(self, body: str) -> None:
        inner = _Scanner(body, allow_blocks=False)
        inner.run()
        spoken = " ".join("".join(inner.speech).split())
        self.directives.append(Script(body=spoken))
        self.directives.extend(inner.directives)
        # Script bodies are spoken, never displayed.
        self.speech.append(f" {spoken} ")

    def _try_inline(self) -> bool:
        close = self.text.find("]", self.pos + 1)
        if close == -1:
            return False
        content = self.text[self.pos + 1:close]
        if "[" in content or "\n" in content:
            return False
        has_terminal = TERMINAL_TOKEN in content
        if has_terminal:
            content = " ".join(content.replace(TERMINAL_TOKEN, " ").split())
        directive = _inline_directive(content)
        if directive is None:
            return False
        self.directives.append(directive)
        if has_terminal:
            self.directives.append(Terminal())
        self.pos = close + 1
        if isinstance(directive, Blank):
            self._prose.append(directive.placeholder)
            self.speech.append(f"blank {directive.id}")
        elif isinstance(directive, TrueFalseNotGiven):
            self._prose.append(directive.placeholder)
            self.speech.append(f"Question {directive.id}: {directive.statement}")
        elif isinstance(directive, Correction):
            self._prose.append(directive.placeholder)
            self.speech.append(directive.corrected)
        return True
