import re

_CODE_PUNCTUATION = re.compile(r"\s*([{}();,])\s*")


def collapse_whitespace(text: str) -> str:
    """Trims and collapses every whitespace run to a single space."""
    return " ".join(text.split())


def normalize(text: str, case_sensitive: bool = False, strict: bool = False) -> str:
    """
    Normalizes a free-text answer for comparison.

    Args:
        text: Raw answer text.
        case_sensitive: Keep the original casing when True.
        strict: Keep internal whitespace when True (outer whitespace is
            always trimmed).

    Example:
        >>> normalize("  Has   Copy ")
        'has copy'
        >>> normalize("a  b ", strict=True)
        'a  b'
    """
    if not case_sensitive:
        text = text.lower()
    if strict:
        return text.strip()
    return collapse_whitespace(text)


def normalize_code(code: str) -> str:
    """
    Whitespace-insensitive form of a code snippet. Casing is preserved and
    whitespace touching braces, parentheses, semicolons and commas is dropped.
    """
    return _CODE_PUNCTUATION.sub(r"\1", collapse_whitespace(code))


def normalize_output(output: str) -> str:
    return collapse_whitespace(output.lower())
