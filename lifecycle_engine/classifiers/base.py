from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel


class LeadTextSignals(BaseModel):
    """Boolean signals extracted from a lead's free-text fields."""
    decision_makers_named: bool = False
    multiple_decision_makers: bool = False
    needs_described: bool = False
    needs_detailed: bool = False


class BaseLeadClassifier(ABC):
    """Abstract base class for free-text lead classifiers"""

    @abstractmethod
    def classify(
        self,
        decision_makers: Optional[str],
        specific_needs: Optional[str]
    ) -> LeadTextSignals:
        """
        Reads the lead's free-text fields and returns boolean signals.

        Args:
            decision_makers: Free text listing the people who decide
            specific_needs: Free text describing what the lead needs

        Returns:
            LeadTextSignals with every signal resolved to a bool.
            Missing text never raises and yields False signals.
        """
        pass
