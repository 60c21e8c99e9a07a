"""Judge name normalization.

Turns a raw judge-name string into the comparison keys used by the
match index and the resolver:

- exact:        lowercased and trimmed, otherwise untouched
- folded:       punctuation removed, honorifics/suffixes stripped,
                whitespace collapsed, lowercased
- last_name:    last folded token
- first_last:   first and last folded tokens ("maria garcia")
- initial_last: first initial and last token ("m. garcia")

Everything here is pure. Empty input yields empty keys, which callers
treat as "no extractable name".
"""

import re
from dataclasses import dataclass

# Applied after punctuation removal. Periods become spaces first, so
# "J.R." stays two initials and "Hon.Maria" loses its honorific.
HONORIFICS = re.compile(
    r"\b(?:hon|honorable|judge|justice|magistrate|jr|sr|ii|iii|iv)\b",
    re.IGNORECASE,
)
_PERIODS = re.compile(r"\.")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

# Judge mentions inside free-text case names, tried in order
CASE_NAME_PATTERNS = [
    re.compile(r"\bbefore\s+judge\s+(\w+\s+\w+)", re.IGNORECASE),
    re.compile(r"\bjudge\s+(\w+\s+\w+)", re.IGNORECASE),
    re.compile(r"\bhon\.?\s+(\w+\s+\w+)", re.IGNORECASE),
    re.compile(r"\bjustice\s+(\w+\s+\w+)", re.IGNORECASE),
]


@dataclass(frozen=True)
class NormalizedName:
    """Comparison keys derived from one raw name."""

    exact: str = ""
    folded: str = ""
    last_name: str = ""
    first_last: str = ""
    initial_last: str = ""

    @property
    def is_empty(self) -> bool:
        """True when no usable name could be extracted."""
        return not self.folded

    @property
    def is_single_token(self) -> bool:
        """True for surname-only names such as "Garcia"."""
        return bool(self.folded) and " " not in self.folded


EMPTY_NAME = NormalizedName()


def fold_name(raw: str | None) -> str:
    """Fold a name to its honorific-free, punctuation-free lowercase form."""
    if not raw:
        return ""
    folded = _PERIODS.sub(" ", raw.lower())
    folded = _PUNCTUATION.sub("", folded)
    folded = HONORIFICS.sub(" ", folded)
    return _WHITESPACE.sub(" ", folded).strip()


def normalize(raw: str | None) -> NormalizedName:
    """Compute every comparison key for a raw judge name.

    Args:
        raw: Raw name as found on a judge or case record

    Returns:
        NormalizedName (all fields empty for blank input)
    """
    if raw is None:
        return EMPTY_NAME

    exact = raw.strip().lower()
    if not exact:
        return EMPTY_NAME

    folded = fold_name(raw)
    tokens = folded.split()
    if not tokens:
        return NormalizedName(exact=exact)

    last = tokens[-1]
    if len(tokens) == 1:
        return NormalizedName(exact=exact, folded=folded, last_name=last)

    first = tokens[0]
    return NormalizedName(
        exact=exact,
        folded=folded,
        last_name=last,
        first_last=f"{first} {last}",
        initial_last=f"{first[0]}. {last}",
    )


def extract_judge_from_case_name(case_name: str | None) -> str | None:
    """Pull a judge name out of a free-text case name.

    Recognizes "Before Judge X Y", "Judge X Y", "Hon. X Y" and
    "Justice X Y", in that order.

    Args:
        case_name: Case caption or title

    Returns:
        The two captured name words, or None
    """
    if not case_name:
        return None

    for pattern in CASE_NAME_PATTERNS:
        match = pattern.search(case_name)
        if match and match.group(1):
            return match.group(1)

    return None
