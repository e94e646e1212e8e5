"""Error kinds raised by the lending engine.

``OutOfStock`` and ``InvalidState`` are expected, recoverable conditions
(an admin can retry, reject or wait for returns).  ``NotFound`` and
``ValidationError`` mean the caller asked for something that cannot exist.
"""


class LibraryError(Exception):
    kind = "library_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(LibraryError):
    kind = "not_found"
    status_code = 404


class OutOfStock(LibraryError):
    kind = "out_of_stock"
    status_code = 409


class InvalidState(LibraryError):
    kind = "invalid_state"
    status_code = 409


class AlreadyReturned(InvalidState):
    kind = "already_returned"


class ValidationError(LibraryError):
    kind = "validation_error"
    status_code = 422
