# parser.py
from __future__ import annotations

from typing import List, Sequence

from .log import get_logger
from .model import ParsedCommand, PatternGroup

log = get_logger("taskweave.parser")

SEPARATOR = "--"
CHAIN = "->"


def split_group(content: str) -> List[str]:
    """
    Split the inside of a `[...]` group on commas.

    Commas inside `{...}` stay put so brace alternation (`build:{a,b}`)
    survives as one pattern. Entries are trimmed, empty ones dropped.
    """
    patterns: List[str] = []
    current = ""
    depth = 0

    for ch in content:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1

        if ch == "," and depth == 0:
            if current.strip():
                patterns.append(current.strip())
            current = ""
        else:
            current += ch

    if current.strip():
        patterns.append(current.strip())
    return patterns


def split_chain(token: str) -> List[str]:
    """Split `[a]->[b,c]` on the arrows that sit outside any bracket."""
    parts: List[str] = []
    current = ""
    depth = 0
    i = 0

    while i < len(token):
        ch = token[i]
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1

        if token.startswith(CHAIN, i) and depth == 0:
            if current.strip():
                parts.append(current.strip())
            current = ""
            i += len(CHAIN)
            continue

        current += ch
        i += 1

    if current.strip():
        parts.append(current.strip())
    return parts


def _strip_brackets(part: str) -> str:
    if part.startswith("[") and part.endswith("]"):
        return part[1:-1]
    return part


def _apply_long_flag(flag: str, flags: dict) -> None:
    if flag in ("quiet", "q"):
        flags["quiet"] = True
    elif flag in ("continue", "c"):
        flags["continue_on_error"] = True
    elif flag == "no-prefix":
        flags["prefix"] = False
    elif flag.startswith("prefix="):
        flags["prefix"] = flag[len("prefix="):]
    else:
        log.warning("Unknown flag: --%s", flag)


def _apply_short_flags(letters: str, flags: dict) -> None:
    for letter in letters:
        if letter == "q":
            flags["quiet"] = True
        elif letter == "c":
            flags["continue_on_error"] = True
        else:
            log.warning("Unknown flag: -%s", letter)


def parse_args(tokens: Sequence[str]) -> ParsedCommand:
    """
    Turn command-line tokens into pattern groups, flags and a trailing command.

    Examples:
        ["[test:*]"]                      -> one parallel group
        ["[lint,test]->[build]"]          -> groups tagged 0 and 1
        ["[build]", "-q", "--", "node", "app.js"]
                                          -> quiet flag, command "node app.js"
    """
    tokens = list(tokens)
    result = ParsedCommand()

    if SEPARATOR in tokens:
        idx = tokens.index(SEPARATOR)
        result.command = " ".join(tokens[idx + 1:]) or None
        tokens = tokens[:idx]

    step = 0
    for token in tokens:
        if token.startswith("[") and token.endswith("]"):
            if CHAIN in token:
                for part in split_chain(token):
                    patterns = split_group(_strip_brackets(part))
                    if not patterns:
                        continue
                    result.groups.append(PatternGroup(tuple(patterns), step))
                    step += 1
            else:
                patterns = split_group(token[1:-1])
                if patterns:
                    result.groups.append(PatternGroup(tuple(patterns)))
        elif token.startswith("--"):
            _apply_long_flag(token[2:], result.flags)
        elif token.startswith("-") and len(token) > 1:
            _apply_short_flags(token[1:], result.flags)
        else:
            log.debug("Ignoring argument %r", token)

    return result
