"""Core logic for ciwarden.

This package holds the decision-making parts; all I/O goes through the
collaborator protocols in ``ciwarden.services``:
- classifier: failure classification and affected-file extraction
- suggestions: remediation hints per error type and language
- languages: language inference from file paths
- poller: waiting for CI checks with adaptive intervals
- tools: fixer detection
- remediation: transactional automated fixes
- session: attempt tracking and remediation metrics
"""

from .classifier import FailureClassifier, classify, extract_affected_files
from .languages import Language, infer_language
from .poller import CIPoller, WaitOptions, next_interval
from .remediation import RemediationEngine, changed_paths, count_changed_lines
from .session import AttemptTracker, RemediationSession
from .suggestions import SuggestionEngine, get_suggestion
from .tools import FixPlan, ToolDetector

__all__ = [
    "AttemptTracker",
    "CIPoller",
    "FailureClassifier",
    "FixPlan",
    "Language",
    "RemediationEngine",
    "RemediationSession",
    "SuggestionEngine",
    "ToolDetector",
    "WaitOptions",
    "changed_paths",
    "classify",
    "count_changed_lines",
    "extract_affected_files",
    "get_suggestion",
    "infer_language",
    "next_interval",
]
