"""Exceptions raised by the baking engine and the annotation session."""

from __future__ import annotations


class AnnobakeError(Exception):
    """Base class for every error raised by annobake."""


class DocumentLoadError(AnnobakeError):
    """
    Raised when the source bytes cannot be opened as a PDF document.

    This is the only fatal outcome of a bake call: no partial output is
    produced.

    Attributes:
        reason: Human readable cause
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f'Unable to load source PDF: {reason}')


class InvalidSignatureError(AnnobakeError):
    """
    Raised when a signature payload is not a supported image data URL.

    Attributes:
        preview: Leading characters of the rejected payload
    """

    def __init__(self, message: str, *, preview: str = '') -> None:
        self.preview = preview
        super().__init__(message)


class UnsupportedImageError(AnnobakeError):
    """
    Raised when decoded signature bytes do not match the declared image subtype.

    Attributes:
        subtype: Subtype declared in the data URL
    """

    def __init__(self, subtype: str, message: str) -> None:
        self.subtype = subtype
        super().__init__(message)


class DuplicateAnnotationError(AnnobakeError):
    """Raised when an annotation id is already present in a session."""

    def __init__(self, annotation_id: str) -> None:
        self.annotation_id = annotation_id
        super().__init__(f"Annotation '{annotation_id}' already exists in this session")


class AnnotationNotFoundError(AnnobakeError):
    """Raised when an edit targets an annotation id that is not in the session."""

    def __init__(self, annotation_id: str) -> None:
        self.annotation_id = annotation_id
        super().__init__(f"Annotation '{annotation_id}' not found")


class UnsupportedTextError(AnnobakeError):
    """
    Raised when no configured font can draw every character of a comment.

    Attributes:
        characters: The characters no available font covers
    """

    def __init__(self, characters: str) -> None:
        self.characters = characters
        super().__init__(f'No available font can draw characters {characters!r}')
