"""Error taxonomy shared by the core and its adapters."""


class ArchivesError(Exception):
    """Base class for all archives errors.

    Each subclass carries a fixed label so the rendered message reads
    ``"<label>: <detail>"``, which is what transports report in-band.
    """

    label = "Internal error"

    def __init__(self, detail: str) -> None:
        super().__init__(f"{self.label}: {detail}")
        self.detail = detail


class StoreConnectionError(ArchivesError):
    """The store could not be reached."""

    label = "Store connection error"


class StoreQueryError(ArchivesError):
    """The store rejected or failed a query."""

    label = "Store query error"


class ConfigError(ArchivesError):
    label = "Configuration error"


class InvalidParameterError(ArchivesError):
    label = "Invalid query parameter"


class NotFoundError(ArchivesError):
    label = "Resource not found"


class SerializationError(ArchivesError):
    label = "Serialization error"


class InternalError(ArchivesError):
    label = "Internal error"
