"""
Flag tokenizer for free-form command arguments.

Splits raw tokens into positional content and flag values. A value flag
greedily takes every following token up to the next recognized flag and
joins them with single spaces, so unquoted text works:

    capture Remember the milk --context weekly shop --source thought

gives positional ["Remember", "the", "milk"], context "weekly shop" and
source "thought".
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

from .errors import FlagError

FlagValue = Union[str, list[str], bool]

_FLAG_NAME_RE = re.compile(r"--[A-Za-z_][\w.-]*")


class FlagKind(Enum):
    VALUE = "value"    # last occurrence wins
    MULTI = "multi"    # each occurrence appends to a list
    SWITCH = "switch"  # no value; presence sets True


@dataclass(frozen=True)
class Flag:
    name: str
    aliases: tuple[str, ...] = ()
    kind: FlagKind = FlagKind.VALUE
    required: bool = False  # an empty value is a usage error

    @property
    def tokens(self) -> tuple[str, ...]:
        return (f"--{self.name}",) + self.aliases


class FlagSet:
    """The flags a command recognizes.

    An open-ended set accepts any ``--name`` token as a value flag,
    which is how ``add`` collects arbitrary frontmatter fields.
    """

    def __init__(self, flags: Iterable[Flag] = (), *, open_ended: bool = False,
                 required: bool = False):
        self._flags = list(flags)
        self._by_token = {tok: f for f in self._flags for tok in f.tokens}
        self.open_ended = open_ended
        self._open_required = required

    def lookup(self, token: str) -> Optional[Flag]:
        flag = self._by_token.get(token)
        if flag is None and self.open_ended and is_flag_token(token):
            flag = Flag(token[2:], required=self._open_required)
        return flag

    def declares(self, token: str) -> bool:
        return token in self._by_token

    def __iter__(self) -> Iterator[Flag]:
        return iter(self._flags)


@dataclass
class ParsedFlags:
    """Tokenizer output: positional tokens plus flag values keyed by flag name."""
    positional: list[str] = field(default_factory=list)
    values: dict[str, FlagValue] = field(default_factory=dict)

    def get(self, name: str, default=None):
        return self.values.get(name, default)

    def has(self, name: str) -> bool:
        return name in self.values

    def items(self):
        return self.values.items()


def is_flag_token(token: str) -> bool:
    """True for ``--name`` tokens; ``--``, ``---`` and ``-- text`` are plain words."""
    return _FLAG_NAME_RE.fullmatch(token) is not None


def _split_inline(token: str) -> tuple[str, Optional[str]]:
    """Split ``--name=value`` into (``--name``, ``value``)."""
    if token.startswith("--") and "=" in token:
        name, value = token.split("=", 1)
        return name, value
    return token, None


def tokenize(args: Iterable[str], flags: FlagSet) -> ParsedFlags:
    """
    Tokenize *args* against a set of recognized flags.

    Tokens before the first flag are positional. An unknown ``--flag``
    is dropped and ends the current flag; the words after it are
    positional again. In an open-ended set the first token after a flag
    is always its value, even if it looks like a flag. A recognized flag
    with nothing after it yields an empty string unless it is ``required``.

    Raises:
        FlagError: A required flag has no value.
    """
    parsed = ParsedFlags()
    current: Optional[Flag] = None
    parts: list[str] = []

    def flush() -> None:
        nonlocal current
        if current is None:
            return
        value = " ".join(parts)
        if current.required and not value:
            raise FlagError(f"Missing value for --{current.name}")
        if current.kind is FlagKind.MULTI:
            existing = parsed.values.setdefault(current.name, [])
            existing.append(value)
        else:
            parsed.values[current.name] = value
        parts.clear()
        current = None

    for raw in args:
        token, inline = _split_inline(raw)
        if (flags.open_ended and current is not None and not parts
                and not flags.declares(token)):
            parts.append(raw)
            continue
        flag = flags.lookup(token)
        if flag is not None:
            flush()
            if flag.kind is FlagKind.SWITCH:
                parsed.values[flag.name] = True
                continue
            current = flag
            if inline is not None:
                parts.append(inline)
        elif is_flag_token(token):
            flush()
        elif current is not None:
            parts.append(raw)
        else:
            parsed.positional.append(raw)
    flush()
    return parsed


# Flag sets used by the commands

CAPTURE_FLAGS = FlagSet([
    Flag("context"),
    Flag("source"),
])

QUERY_FLAGS = FlagSet([
    Flag("type", ("-t",), FlagKind.MULTI),
    Flag("where", ("-w",)),
    Flag("order", ("-o",), FlagKind.MULTI),
    Flag("limit", ("-l",), required=True),
    Flag("offset", required=True),
    Flag("folder", ("-f",)),
    Flag("body", kind=FlagKind.SWITCH),
    Flag("json", kind=FlagKind.SWITCH),
    Flag("format"),
])

RUN_FLAGS = FlagSet([
    Flag("json", kind=FlagKind.SWITCH),
])

ADD_FLAGS = FlagSet(open_ended=True, required=True)
