from typing import List, Optional

from .base import BaseLeadClassifier, LeadTextSignals


class KeywordLeadClassifier(BaseLeadClassifier):
    """
    Classifier based on separators and text length.
    Works locally, no external calls.
    """

    def __init__(
        self,
        stakeholder_separators: Optional[List[str]] = None,
        described_needs_length: int = 20,
        detailed_needs_length: int = 50
    ):
        # A list like "CEO, CFO" names more than one stakeholder
        self.stakeholder_separators: List[str] = stakeholder_separators or [","]
        self.described_needs_length = described_needs_length
        self.detailed_needs_length = detailed_needs_length

    def classify(
        self,
        decision_makers: Optional[str],
        specific_needs: Optional[str]
    ) -> LeadTextSignals:
        decision_makers = decision_makers or ""
        specific_needs = specific_needs or ""

        return LeadTextSignals(
            decision_makers_named=len(decision_makers) > 0,
            multiple_decision_makers=self._names_several(decision_makers),
            needs_described=len(specific_needs) > self.described_needs_length,
            needs_detailed=len(specific_needs) > self.detailed_needs_length,
        )

    def _names_several(self, text: str) -> bool:
        return any(separator in text for separator in self.stakeholder_separators)
