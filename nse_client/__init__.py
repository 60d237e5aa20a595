"""Session-aware NSE client with option-chain analytics."""

from .client import NSE
from .errors import (
    AuthenticationError,
    DecodeError,
    InsufficientDataError,
    InvalidArgumentError,
    NSEError,
    NoDataError,
    TransportError,
    UpstreamHttpError,
)
from .models import CompiledChain, SideAnalytics, StrikeAnalytics
from .option_chain import OptionChainCompiler, compile_document, max_pain

__all__ = [
    "NSE",
    "AuthenticationError",
    "CompiledChain",
    "DecodeError",
    "InsufficientDataError",
    "InvalidArgumentError",
    "NSEError",
    "NoDataError",
    "OptionChainCompiler",
    "SideAnalytics",
    "StrikeAnalytics",
    "TransportError",
    "UpstreamHttpError",
    "compile_document",
    "max_pain",
]
