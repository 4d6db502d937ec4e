import string
from dataclasses import dataclass, field


@dataclass(frozen=True)
class NormalizedText:
    """Result of text normalization."""

    text: str
    original: str
    removed_chars: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.text)


class TextNormalizer:
    """
    Normalizes raw text for cryptanalysis.

    Keeps the ASCII letters of the input in their original order and
    uppercases them. Whitespace, digits, punctuation and any non-ASCII
    characters are dropped.
    """

    ALPHABET = string.ascii_uppercase
    _LETTERS = frozenset(string.ascii_letters)

    def normalize(self, text: str) -> str:
        """
        Normalize text to an uppercase A-Z stream.

        Args:
            text: Arbitrary input text

        Returns:
            Uppercase letters only; empty input yields an empty string
        """
        return "".join(c for c in text if c in self._LETTERS).upper()

    def normalize_full(self, text: str) -> NormalizedText:
        """Normalize text and report which characters were removed."""
        removed_chars: dict[str, int] = {}
        kept = []

        for char in text:
            if char in self._LETTERS:
                kept.append(char)
            else:
                removed_chars[char] = removed_chars.get(char, 0) + 1

        return NormalizedText(
            text="".join(kept).upper(),
            original=text,
            removed_chars=removed_chars,
        )


_normalizer = TextNormalizer()


def normalize(text: str) -> str:
    """Module-level shortcut for ``TextNormalizer().normalize``."""
    return _normalizer.normalize(text)
