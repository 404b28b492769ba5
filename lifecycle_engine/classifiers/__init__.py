from lifecycle_engine.classifiers.base import BaseLeadClassifier, LeadTextSignals
from lifecycle_engine.classifiers.keyword import KeywordLeadClassifier


def get_lead_classifier(name: str = "keyword") -> BaseLeadClassifier:
    """
    Factory for creating lead text classifiers.
    Returns the classifier selected by the LEAD_CLASSIFIER setting.

    Raises:
        ValueError: If no classifier is registered under the name
    """
    classifier_type = name.lower()

    if classifier_type == "keyword":
        return KeywordLeadClassifier()

    raise ValueError(f"Unknown lead classifier: {name}")


__all__ = [
    "BaseLeadClassifier",
    "KeywordLeadClassifier",
    "LeadTextSignals",
    "get_lead_classifier",
]
