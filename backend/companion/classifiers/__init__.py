"""
Safety, intent and domain relevance classification
"""
from companion.classifiers.arbiter import Arbiter  # noqa: F401
from companion.classifiers.intent import IntentClassifier  # noqa: F401
from companion.classifiers.safety import SafetyClassifier  # noqa: F401
from companion.classifiers.unified import UnifiedClassifier  # noqa: F401
