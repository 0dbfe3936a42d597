from __future__ import annotations


class FetchError(Exception):
    def __init__(self, error_type: str, detail: str = "", http_status: int | None = None):
        super().__init__(f"{error_type}: {detail}")
        self.error_type = error_type
        self.detail = detail
        self.http_status = http_status

    @property
    def retryable(self) -> bool:
        if self.error_type in {ERROR_TIMEOUT, ERROR_NETWORK}:
            return True
        if self.error_type == ERROR_HTTP and self.http_status is not None:
            return self.http_status == 429 or self.http_status >= 500
        return False


ERROR_INVALID_URL = "INVALID_URL"
ERROR_TIMEOUT = "TIMEOUT"
ERROR_TLS = "TLS_ERROR"
ERROR_NETWORK = "NETWORK_ERROR"
ERROR_HTTP = "HTTP_ERROR"
ERROR_PARSE_FAIL = "PARSE_FAIL"
ERROR_UNKNOWN = "UNKNOWN"
