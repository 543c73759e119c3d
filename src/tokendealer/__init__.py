from .adapters import AiohttpClientContext, HttpxClientContext, RequestsClientContext
from .dealer import AsyncTokenDealer, ExhaustSignal, TokenDealer, adeal, deal, get_tokens_usage
from .env import load_tokens_from_env
from .errors import AllTokensExhaustedError, TokenDealerError, TokenExhaustedRetry
from .policies import (
    AlwaysWait,
    Choice,
    MaxWaitPolicy,
    NeverWait,
    WaitPolicy,
    choose_token,
    coerce_wait_policy,
)
from .ratelimit import parse_retry_after, reset_from_headers
from .state import UsageRecord
from .store import DEFAULT_GROUP, LRUStore, UsageStore, default_store, get_default_store
from .types import AuthConfig

__all__ = [
    "UsageRecord",
    "UsageStore",
    "LRUStore",
    "DEFAULT_GROUP",
    "default_store",
    "get_default_store",
    "Choice",
    "choose_token",
    "WaitPolicy",
    "NeverWait",
    "AlwaysWait",
    "MaxWaitPolicy",
    "coerce_wait_policy",
    "TokenDealer",
    "AsyncTokenDealer",
    "ExhaustSignal",
    "deal",
    "adeal",
    "get_tokens_usage",
    "TokenDealerError",
    "AllTokensExhaustedError",
    "TokenExhaustedRetry",
    "AuthConfig",
    "load_tokens_from_env",
    "parse_retry_after",
    "reset_from_headers",
    "RequestsClientContext",
    "HttpxClientContext",
    "AiohttpClientContext",
]
