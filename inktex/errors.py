"""Exception types raised by the recognition pipeline."""


class InkTexError(Exception):
    """Base class for all pipeline errors."""


class ModelLoadError(InkTexError):
    """Model or vocabulary bytes could not be fetched, or no session could be created."""


class InferenceError(InkTexError):
    """The executor failed while running the encoder or a decoder step."""


class VocabError(InkTexError):
    """Vocabulary document is missing required fields."""
