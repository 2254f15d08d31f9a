"""
LaTeX repair and validation over token arrays.

All functions are pure and total: malformed decoder output is always
repaired deterministically, never rejected with an exception.
"""

from typing import List, Sequence, Optional, Callable, Tuple
import logging

logger = logging.getLogger(__name__)


OPEN_BRACE = '{'
CLOSE_BRACE = '}'

FRAC = '\\frac'
SQRT = '\\sqrt'

# Fixed-arity structural commands and their argument counts
FIXED_ARITY_COMMANDS = {
    FRAC: 2,
    SQRT: 1,
}

# Commands that are meaningless as a whole expression on their own
NEEDS_ARGS = frozenset([
    '\\sum', '\\int', '\\sin', '\\cos', '\\tan', '\\log', '\\lim', SQRT, FRAC,
])

# LaTeX spacing commands that carry no structure
SPACING_COMMANDS = frozenset(['\\!', '\\,', '\\;', '\\ '])


def balance_braces(tokens: Sequence[str]) -> List[str]:
    """Drop unmatched '}' and close every unterminated '{' at the end."""
    result = []
    depth = 0

    for t in tokens:
        if t == OPEN_BRACE:
            depth += 1
            result.append(t)
        elif t == CLOSE_BRACE:
            if depth > 0:
                depth -= 1
                result.append(t)
            # unmatched '}' is dropped
        else:
            result.append(t)

    result.extend([CLOSE_BRACE] * depth)
    return result


def _group_end(tokens: Sequence[str], start: int) -> int:
    """Index just past the braced group opening at ``start`` (nesting-aware, may run off the end)."""
    depth = 1
    i = start + 1
    while i < len(tokens) and depth > 0:
        if tokens[i] == OPEN_BRACE:
            depth += 1
        elif tokens[i] == CLOSE_BRACE:
            depth -= 1
        i += 1
    return i


def fix_arg_arity(tokens: Sequence[str], command: str, required_args: int) -> List[str]:
    """Trim surplus argument groups after each occurrence of ``command``.

    Up to ``required_args`` groups are kept, where a group is a balanced
    ``{...}`` span or a single bare token. Any further braced groups
    directly following are discarded.
    """
    result = []
    i = 0

    while i < len(tokens):
        if tokens[i] != command:
            result.append(tokens[i])
            i += 1
            continue

        result.append(tokens[i])
        i += 1

        groups = 0
        while i < len(tokens) and groups < required_args:
            if tokens[i] == OPEN_BRACE:
                end = _group_end(tokens, i)
                result.extend(tokens[i:end])
                i = end
            else:
                result.append(tokens[i])
                i += 1
            groups += 1

        # skip extra braced groups
        while i < len(tokens) and tokens[i] == OPEN_BRACE:
            i = _group_end(tokens, i)

    return result


def repair_latex(tokens: Sequence[str]) -> List[str]:
    """Balance braces, then fix the argument count of every fixed-arity command."""
    result = balance_braces(tokens)
    for command, arity in FIXED_ARITY_COMMANDS.items():
        result = fix_arg_arity(result, command, arity)
    return result


def count_argument_groups(tokens: Sequence[str]) -> int:
    """Number of consecutive braced groups at the start of ``tokens``."""
    groups = 0
    i = 0
    while i < len(tokens) and tokens[i] == OPEN_BRACE:
        groups += 1
        i = _group_end(tokens, i)
    return groups


def is_complete_expression(tokens: Sequence[str]) -> bool:
    """Whether a repaired token array reads as a finished expression.

    False for empty input, for a lone command that needs arguments, and when
    any fixed-arity command is not followed by enough braced groups.
    """
    if len(tokens) == 0:
        return False
    if len(tokens) == 1 and tokens[0] in NEEDS_ARGS:
        return False

    for i, t in enumerate(tokens):
        required = FIXED_ARITY_COMMANDS.get(t)
        if required is not None and count_argument_groups(tokens[i + 1:]) < required:
            return False

    return True


def is_structurally_valid(latex: str) -> bool:
    """Whitespace-tokenized structural check of a LaTeX string.

    Rejects empty strings, brace depth going negative or not returning to
    zero, and fixed-arity commands without enough braced groups.
    """
    tokens = latex.split()
    if not tokens:
        return False

    depth = 0
    for t in tokens:
        if t == OPEN_BRACE:
            depth += 1
        elif t == CLOSE_BRACE:
            depth -= 1
            if depth < 0:
                return False
    if depth != 0:
        return False

    for i, t in enumerate(tokens):
        required = FIXED_ARITY_COMMANDS.get(t)
        if required is not None and count_argument_groups(tokens[i + 1:]) < required:
            return False

    return True


def normalize_tokens(tokens: Sequence[str]) -> List[str]:
    """Canonical bracing used when comparing against ground truth.

    Drops spacing commands; wraps bare single-token arguments of ``^``,
    ``_``, ``\\frac`` and ``\\sqrt`` in braces.
    """
    filtered = [t for t in tokens if t not in SPACING_COMMANDS]

    result = []
    i = 0
    while i < len(filtered):
        t = filtered[i]
        result.append(t)
        i += 1

        if t in ('^', '_'):
            if i < len(filtered) and filtered[i] != OPEN_BRACE:
                result.extend([OPEN_BRACE, filtered[i], CLOSE_BRACE])
                i += 1
        elif t in FIXED_ARITY_COMMANDS:
            for _ in range(FIXED_ARITY_COMMANDS[t]):
                if i >= len(filtered):
                    break
                if filtered[i] == OPEN_BRACE:
                    end = _group_end(filtered, i)
                    result.extend(filtered[i:end])
                    i = end
                else:
                    result.extend([OPEN_BRACE, filtered[i], CLOSE_BRACE])
                    i += 1
    return result


def select_candidate(
    candidates: Sequence[Sequence[str]],
    validator: Callable[[str], bool] = is_structurally_valid,
    require_complete: bool = False,
) -> Tuple[Optional[int], str]:
    """Pick the first acceptable candidate.

    Candidates are visited best first and repaired. With
    ``require_complete`` candidates failing ``is_complete_expression`` are
    skipped. The first repaired string accepted by ``validator`` wins.
    Otherwise the best candidate's repaired string is returned if it passes
    ``validator`` on its own, else the empty string.

    Args:
        candidates: Symbol arrays, best first
        validator: Math acceptance check over a repaired string
        require_complete: Skip incomplete candidates ("auto" mode)

    Returns:
        (index of the chosen candidate or None, LaTeX string)
    """
    for idx, symbols in enumerate(candidates):
        repaired = repair_latex(symbols)
        if require_complete and not is_complete_expression(repaired):
            logger.debug(f"Skipping incomplete candidate {idx}: {repaired}")
            continue
        latex = ' '.join(repaired)
        if validator(latex):
            return idx, latex

    if candidates:
        fallback = ' '.join(repair_latex(candidates[0]))
        if validator(fallback):
            return 0, fallback

    return None, ''
