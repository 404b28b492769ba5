class LifecycleEngineError(Exception):
    """Base exception for the lifecycle engine."""
    pass


class RuleDefinitionError(LifecycleEngineError):
    """Raised when a routing rule set is malformed."""
    pass
