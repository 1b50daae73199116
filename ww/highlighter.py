import re
from collections.abc import Mapping

# SGR sequences understood by any ANSI terminal (and by rich's ANSI decoder).
RESET = "\x1b[0m"
BOLD_RED = "\x1b[1;31m"


class Highlighter:
    """
    Wraps every case-insensitive occurrence of each configured term with
    its color code and RESET. All terms are matched in a single pass, the
    longest term first where several match at one position, so inserted
    codes are never matched again. With no terms configured, highlight()
    returns its input unchanged.
    """

    def __init__(self, highlights: Mapping[str, str] | None = None) -> None:
        items = sorted(
            ((term, code) for term, code in (highlights or {}).items() if term),
            key=lambda item: len(item[0]),
            reverse=True,
        )
        self._codes = {f"t{index}": code for index, (_, code) in enumerate(items)}
        self._pattern: re.Pattern[str] | None = None
        if items:
            self._pattern = re.compile(
                "|".join(f"(?P<t{index}>{re.escape(term)})" for index, (term, _) in enumerate(items)),
                re.IGNORECASE,
            )

    def highlight(self, text: str) -> str:
        if self._pattern is None:
            return text
        return self._pattern.sub(self._wrap, text)

    def _wrap(self, match: re.Match[str]) -> str:
        assert match.lastgroup is not None
        return f"{self._codes[match.lastgroup]}{match.group(0)}{RESET}"


def highlighter_for_terms(terms: list[str], code: str = BOLD_RED) -> Highlighter:
    return Highlighter({term: code for term in terms})
