"""
LLM Quiz Document Plugin

A plugin for studying the sentences of an annotated Japanese document with
Bayesian spaced repetition.
"""

from . import db
from . import facts
from . import keys
from . import recall
from . import scheduler
from . import graph
from . import exercises
from . import review
from . import sync
from . import session
from . import study
from . import structured

__version__ = "0.1.0"
__all__ = ["db", "facts", "keys", "recall", "scheduler", "graph", "exercises", "review", "sync", "session", "study", "structured"]
