"""Exception types for the block-processing pipeline"""


class LitpressError(Exception):
    """Base class for all litpress errors."""


class UnsupportedLanguageError(LitpressError):
    """A block's language is not in the execution allow-list."""

    def __init__(self, language: str, supported: list[str]):
        self.language = language
        self.supported = supported
        super().__init__(
            f"Unsupported language for server execution: {language}. "
            f"Supported languages: {', '.join(supported)}"
        )


class CacheIOError(LitpressError):
    """A cache write failed; surfaced to the build."""


class DuplicateBlockNameError(LitpressError):
    """Two blocks in one document share an explicit name."""

    def __init__(self, document_path: str, name: str, indexes: tuple[int, int]):
        self.document_path = document_path
        self.name = name
        self.indexes = indexes
        super().__init__(
            f"Duplicate block name '{name}' in {document_path} "
            f"(blocks {indexes[0]} and {indexes[1]})"
        )

