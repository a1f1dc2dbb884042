"""
Model invocation layer.

Sends a prompt to one of many interchangeable text-generation backends and
exposes the output through one uniform, staleness-safe interface.

Supported backends:
- Managed service: delegated to a ManagedService collaborator
- HTTP endpoints: user-configured URL, auth scheme, request template and
  response key path, answering synchronously or as a data-event stream

Example usage:
    from model_invocation import InMemoryModelRegistry, ModelSession, Preferences

    session = ModelSession(InMemoryModelRegistry(models), Preferences.from_env())
    result = await session.invoke("", "Summarize this", "long text ...")
    print(result.data)
"""

from .config import Preferences
from .errors import (
    ConfigurationError,
    DecodeError,
    InvocationError,
    TemplateError,
    TransportError,
)
from .key_path import get_key_path
from .lifecycle import InvocationPhase, ModelSession, StreamState
from .managed import ManagedCompletion, ManagedService, StubManagedService
from .registry import InMemoryModelRegistry, ModelRegistry
from .request_builder import build_request_body, render_input_schema
from .resolver import ModelResolver, ResolvedModel
from .stream import StreamAccumulator, merge_output
from .transport import HttpDispatcher
from .types import AuthType, InvocationResult, Model

__all__ = [
    "AuthType",
    "ConfigurationError",
    "DecodeError",
    "HttpDispatcher",
    "InMemoryModelRegistry",
    "InvocationError",
    "InvocationPhase",
    "InvocationResult",
    "ManagedCompletion",
    "ManagedService",
    "Model",
    "ModelRegistry",
    "ModelResolver",
    "ModelSession",
    "Preferences",
    "ResolvedModel",
    "StreamAccumulator",
    "StreamState",
    "StubManagedService",
    "TemplateError",
    "TransportError",
    "build_request_body",
    "get_key_path",
    "merge_output",
    "render_input_schema",
]
