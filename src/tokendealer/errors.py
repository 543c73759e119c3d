class TokenDealerError(Exception):
    code: str = "ETOKENDEALER"


class AllTokensExhaustedError(TokenDealerError):
    """Every candidate token is exhausted and the wait policy declined to wait.

    ``usage`` holds a copy of the per-token usage at the moment of failure.
    """

    code = "EALLTOKENSEXHAUSTED"

    def __init__(self, usage: dict, token: str | None = None, wait: float | None = None):
        super().__init__("All tokens are exhausted")
        self.usage = usage
        self.token = token
        self.wait = wait


class TokenExhaustedRetry(TokenDealerError):
    """Raised by a retryable exhaust signal; the owning deal() call re-selects a token."""

    code = "ETOKENEXHAUSTED"

    def __init__(self, signal):
        super().__init__("Token is exhausted, retrying..")
        self.signal = signal
