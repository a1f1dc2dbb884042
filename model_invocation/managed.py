"""
Managed-service boundary.

The managed service is the platform's own generation backend. This layer
only decides to delegate to it; the transport itself lives behind this
interface and is opaque here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class ManagedCompletion:
    """What the managed service hands back. Forwarded unchanged."""

    data: str = ""
    is_loading: bool = False
    error: Optional[str] = None


class ManagedService(ABC):
    """
    Abstract managed-service transport.
    Invocation code must depend ONLY on this interface.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Capability check: can the managed service be used in this deployment?"""
        raise NotImplementedError

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        *,
        creativity: float,
        execute: bool,
        model: str,
    ) -> ManagedCompletion:
        """Generate text for an already-assembled prompt."""
        raise NotImplementedError

    def revalidate(self) -> None:
        """Ask the service to refresh its last completion. Optional."""
        return None


class StubManagedService(ManagedService):
    """
    Deterministic fake managed service for testing and local runs.

    Echoes the prompt back so callers can see exactly what was delegated.
    """

    def __init__(self, available: bool = True, reply: Optional[str] = None):
        self.available = available
        self.reply = reply
        self.calls: list[dict] = []
        self.revalidations = 0

    def is_available(self) -> bool:
        return self.available

    async def complete(
        self,
        prompt: str,
        *,
        creativity: float,
        execute: bool,
        model: str,
    ) -> ManagedCompletion:
        self.calls.append(
            {"prompt": prompt, "creativity": creativity, "execute": execute, "model": model}
        )
        if not execute:
            return ManagedCompletion(data="", is_loading=False)
        text = self.reply if self.reply is not None else f"[{model}] {prompt}"
        return ManagedCompletion(data=text, is_loading=False)

    def revalidate(self) -> None:
        self.revalidations += 1
