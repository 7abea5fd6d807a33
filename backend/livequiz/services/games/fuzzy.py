"""Typo-tolerant matching for free-response answers."""

import re
import unicodedata
from typing import Iterable, Optional, Tuple

_WHITESPACE = re.compile(r'\s+')


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein(a, b) / max(len(a), len(b))


def normalize(text: str, case_sensitive: bool = False) -> str:
    decomposed = unicodedata.normalize('NFD', text.strip())
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    stripped = _WHITESPACE.sub(' ', stripped)
    return stripped if case_sensitive else stripped.lower()


def match_answer(
    answer: str,
    accepted: Iterable[str],
    case_sensitive: bool = False,
    allow_typos: bool = True,
) -> Tuple[bool, float, Optional[str]]:
    """Return ``(is_correct, best_similarity, matched_answer)``.

    Exact matches after normalisation always count. With typos allowed, the
    best candidate is accepted above a threshold that tightens with the
    length of the shortest accepted answer (0.80 up to 5 chars, 0.85 up to
    10, 0.90 beyond).
    """
    accepted = [a for a in accepted if a]
    player = normalize(answer or '', case_sensitive)
    if not player or not accepted:
        return False, 0.0, None

    best, matched = 0.0, None
    for candidate in accepted:
        normalized = normalize(candidate, case_sensitive)
        if player == normalized:
            return True, 1.0, candidate
        score = similarity(player, normalized)
        if score > best:
            best, matched = score, candidate

    if allow_typos:
        shortest = min(len(a) for a in accepted)
        threshold = 0.80 if shortest <= 5 else 0.85 if shortest <= 10 else 0.90
        if best >= threshold:
            return True, best, matched
    return False, best, matched
