from __future__ import annotations


class StorageError(Exception):
    def __init__(self, error_type: str, detail: str = ""):
        super().__init__(f"{error_type}: {detail}")
        self.error_type = error_type
        self.detail = detail


ERROR_NOT_CONNECTED = "NOT_CONNECTED"
ERROR_INVALID = "INVALID"
ERROR_CONSTRAINT = "CONSTRAINT"
ERROR_OPERATIONAL = "OPERATIONAL"
