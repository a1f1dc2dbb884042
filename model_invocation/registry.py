"""
Model Registry boundary.

The registry owns Model records. The invocation layer only reads from it
and treats a loading registry as "resolution not yet final".
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .types import Model

logger = logging.getLogger(__name__)


class ModelRegistry(ABC):
    """
    Abstract model registry.
    Invocation code must depend ONLY on this interface.
    """

    @property
    @abstractmethod
    def models(self) -> List[Model]:
        """All configured models."""
        raise NotImplementedError

    @property
    @abstractmethod
    def is_loading(self) -> bool:
        """True while records are still being loaded."""
        raise NotImplementedError

    def default_model(self) -> Optional[Model]:
        for model in self.models:
            if model.is_default:
                return model
        return None

    def get(self, model_id: str) -> Optional[Model]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None


class InMemoryModelRegistry(ModelRegistry):
    """
    Registry backed by a plain list.

    Enforces that at most one model is marked default.
    """

    def __init__(self, models: Optional[Iterable[Model]] = None, is_loading: bool = False):
        self._models: List[Model] = []
        self._loading = is_loading
        if models is not None:
            self.load(models)
            # A caller-declared loading state outlives the initial records
            self._loading = is_loading

    @property
    def models(self) -> List[Model]:
        return list(self._models)

    @property
    def is_loading(self) -> bool:
        return self._loading

    def set_loading(self) -> None:
        self._loading = True

    def load(self, models: Iterable[Model]) -> None:
        """Replace all records and mark the registry as loaded."""
        records = list(models)
        defaults = [m.name or m.id for m in records if m.is_default]
        if len(defaults) > 1:
            raise ValueError(f"At most one default model allowed, got {len(defaults)}: {defaults}")
        self._models = records
        self._loading = False
        logger.debug(f"Model registry loaded with {len(records)} models")

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryModelRegistry":
        """
        Load exported model records.

        Accepts either a JSON list of records or an object with a "models" list.
        """
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if isinstance(raw, dict):
            raw = raw.get("models", [])
        if not isinstance(raw, list):
            raise ValueError(f"Expected a list of model records in {path}")
        return cls(Model.model_validate(record) for record in raw)
