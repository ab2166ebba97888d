from __future__ import annotations


class WikiError(RuntimeError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WikiValidationError(WikiError):
    status_code = 400


class WikiNotFoundError(WikiError):
    status_code = 404
