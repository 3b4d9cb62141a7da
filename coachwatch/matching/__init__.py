from .matcher import Matcher, MatchResult

__all__ = ["Matcher", "MatchResult"]
