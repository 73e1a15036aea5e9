# portfolio_tax_engine/engine/event_processors/base_processor.py
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from portfolio_tax_engine.engine.finance_engine import FinanceEngine


class EventProcessor(ABC):
    """Applies one kind of event to the engine's holdings."""

    @abstractmethod
    def process(self, event: Any, engine: "FinanceEngine") -> None:
        """Mutates the holdings owned by `engine`. Events that cannot be applied are logged and skipped."""
        raise NotImplementedError
