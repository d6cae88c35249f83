"""Error taxonomy for the ingestion and alerting pipeline."""


class VitalsError(Exception):
    """Base class for pipeline errors."""


class InvalidReadingError(VitalsError, ValueError):
    """A reading was rejected by the record store and not stored."""


class MalformedMessageError(VitalsError, ValueError):
    """A wire message or import line could not be decoded into a reading."""

    def __init__(self, reason: str, raw: str) -> None:
        super().__init__(f"{reason}: {raw!r}")
        self.reason = reason
        self.raw = raw


class UnknownRecordTypeError(MalformedMessageError):
    """The record-type field named a type the pipeline does not recognize."""


class ConnectionTimeout(VitalsError, ConnectionError):
    """No connection was established within the connect timeout."""


class ConnectorStoppedError(VitalsError, RuntimeError):
    """An operation was attempted on a connector that has been stopped."""


class MessageTooLongError(VitalsError, ConnectionError):
    """A line exceeded the stream buffer limit; the stream can no longer be framed."""
