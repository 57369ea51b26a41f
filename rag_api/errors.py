"""Errors raised by the memory gateway."""


class GatewayError(Exception):
    """The memory gateway or one of its backing services failed."""


class UnsupportedDocumentError(GatewayError):
    """The document format cannot be ingested."""


class DocumentTooLargeError(GatewayError):
    """The document exceeds the configured size limit."""

    def __init__(self, file_name: str, limit: int):
        super().__init__(f"{file_name} exceeds the maximum document size of {limit} bytes")
        self.file_name = file_name
        self.limit = limit
