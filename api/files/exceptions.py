"""
Errors raised by file records
"""


class IndexRecordNotFoundError(LookupError):
    """No index record exists for a file and creating one was not allowed"""

    def __init__(self, combined_identifier: str):
        self.combined_identifier = combined_identifier
        super().__init__(f'Could not load index record for "{combined_identifier}"')


class InvalidIndexStateError(RuntimeError):
    """An index record was merged onto a file that is already persisted"""
