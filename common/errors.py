"""
Error taxonomy shared by the engine, the stores, and the HTTP layer.
"""


class RelatedItemsError(Exception):
    """Base class for all errors raised by the related-items engine."""


class InvalidInteraction(RelatedItemsError, ValueError):
    """Raised when an interaction set or id fails validation. Nothing is written."""


class StoreUnavailable(RelatedItemsError):
    """Raised when the backing store cannot complete a call."""


class ConcurrentProcessingConflict(RelatedItemsError):
    """Raised when another caller holds the processing lease for an item."""

    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id!r} is already being processed")
        self.item_id = item_id


class UnknownMatrix(RelatedItemsError, KeyError):
    """Raised when an input matrix name is not configured on the recommender."""

    def __init__(self, matrix_name: str):
        super().__init__(matrix_name)
        self.matrix_name = matrix_name

    def __str__(self):
        return f"Unknown input matrix: {self.matrix_name!r}"
