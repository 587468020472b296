"""
cachefront - Key Normalization

Maps raw keys, patterns, tags and legacy hashes to their canonical form.
Length is checked on the raw key, before any namespace prefixing.
"""

from collections.abc import Iterable

from ..errors import KeyTooLongError, ValidationError


def validate_key_length(key: str, max_length: int) -> None:
    """
    Raise KeyTooLongError when a raw key is longer than max_length characters.

    Args:
        key: Raw key as supplied by the caller
        max_length: Maximum accepted length
    """
    if len(key) > max_length:
        raise KeyTooLongError(key, max_length)


class KeyNormalizer:
    """
    Canonicalizes cache keys.

    Keys are folded to lowercase unless the normalizer is case-sensitive.
    Changing ``case_sensitive`` affects later calls only; keys already stored
    under the previous policy are not rewritten.
    """

    def __init__(self, case_sensitive: bool = False, max_key_length: int = 512):
        self.case_sensitive = case_sensitive
        self.max_key_length = max_key_length

    def normalize(self, key: str) -> str:
        """
        Normalize a key, pattern or tag.

        Args:
            key: Raw key (the empty string is accepted)

        Returns:
            Canonical key

        Raises:
            ValidationError: If key is not a string
            KeyTooLongError: If key exceeds max_key_length
        """
        if not isinstance(key, str):
            raise ValidationError(
                f"Cache keys must be strings, got {type(key).__name__}",
                {"key_type": type(key).__name__},
            )

        validate_key_length(key, self.max_key_length)
        return key if self.case_sensitive else key.lower()

    def normalize_many(self, keys: Iterable[str]) -> list[str]:
        return [self.normalize(key) for key in keys]

    def normalize_tags(self, tags: Iterable[str] | None) -> list[str]:
        """Normalize tags, dropping empty ones and duplicates while keeping order."""
        if not tags:
            return []
        return list(dict.fromkeys(self.normalize(tag) for tag in tags if tag))
