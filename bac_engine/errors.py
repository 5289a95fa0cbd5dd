"""Error taxonomy for the BAC engine and its collaborators."""


class BACError(Exception):
    """Base class for all engine errors."""


class DataIntegrityError(BACError, ValueError):
    """Garbage input reached the engine: negative weight or grams, or a future-dated drink.

    Indicates a bug upstream of the engine. Never retried.
    """


class InvalidTimeOrdering(DataIntegrityError):
    """Decay was queried at an instant before the drink was logged."""


class InvalidPrediction(BACError, ValueError):
    """A hypothetical drink passed to predict() is not a real drink."""


class DataUnavailable(BACError):
    """Profile or drink history could not be loaded; the last estimate is kept."""


class StorageError(BACError):
    """Raised by store implementations when a read or write fails."""


class DuplicateDrink(DataIntegrityError):
    """A drink id is already in the ledger. Retrying the same write cannot succeed."""
