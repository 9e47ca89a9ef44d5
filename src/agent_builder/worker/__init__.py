"""Queue consumer running agent stages."""

from .processor import HandoffProcessor, ProcessingOutcome, ProcessingResult

__all__ = ["HandoffProcessor", "ProcessingOutcome", "ProcessingResult"]
