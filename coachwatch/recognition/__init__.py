from .cycle import CycleOutcome, RecognitionCycle

__all__ = ["CycleOutcome", "RecognitionCycle"]
