from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class AuthConfig:
    header: str = "Authorization"
    scheme: str = "Bearer"
    in_: Literal["header", "query"] = "header"
    query_param: str = "api_key"

    def apply(self, token: str, headers: dict, params: dict) -> None:
        # The unparameterized slot ("") carries no credential
        if not token:
            return
        if self.in_ == "query":
            params[self.query_param] = token
        else:
            headers[self.header] = f"{self.scheme} {token}".strip()
