"""Error taxonomy for the extraction pipeline."""


class HarvestError(Exception):
    """Base class for all pipeline errors.

    `reason` is the short, caller-visible description recorded in results.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DiscoveryStrategyFailed(HarvestError):
    """A single discovery strategy failed; the others still count."""

    def __init__(self, strategy: str, reason: str):
        super().__init__(f"{strategy} discovery failed: {reason}")
        self.strategy = strategy


class DiscoveryExhausted(HarvestError):
    """Every discovery strategy, including the static fallback, failed."""
    pass


class NavigationFailed(HarvestError):
    """A page could not be loaded after all navigation attempts."""
    pass


class IncompleteStructuredData(HarvestError):
    """JSON-LD recipe data is missing or lacks a required field."""
    pass


class ModelOutputUnparsable(HarvestError):
    """The model returned text that is not valid JSON."""
    pass


class PageTimeout(HarvestError):
    """A single-page extraction exceeded its time budget."""

    def __init__(self, url: str, seconds: float):
        super().__init__(f"per-page timeout exceeded ({seconds:g}s)")
        self.url = url
        self.seconds = seconds


class RecipeRejected(HarvestError):
    """An extracted recipe failed the acceptance check."""
    pass
