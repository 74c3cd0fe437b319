"""
chainnote: record chat notes on the Symbol blockchain.

A LINE webhook delivery is authenticated, each note message is encoded
into a byte-bounded JSON note, embedded in a zero-amount transfer,
signed, announced to a node under a hard timeout, and the outcome is
replied to the chat thread.
"""

__version__ = "0.1.0"

from chainnote.config import NetworkProfile, Settings, get_settings, resolve_network
from chainnote.errors import (
    AnnounceTimeoutError,
    AnnounceTransportError,
    AuthenticationError,
    ChainNoteError,
    ConfigurationError,
    EncodingError,
    RejectionError,
    SigningError,
)
from chainnote.pipeline import NotePipeline, NoteStage, PipelineOutcome

__all__ = [
    "AnnounceTimeoutError",
    "AnnounceTransportError",
    "AuthenticationError",
    "ChainNoteError",
    "ConfigurationError",
    "EncodingError",
    "NetworkProfile",
    "NotePipeline",
    "NoteStage",
    "PipelineOutcome",
    "RejectionError",
    "Settings",
    "SigningError",
    "get_settings",
    "resolve_network",
]
