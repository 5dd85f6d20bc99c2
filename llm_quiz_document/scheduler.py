import datetime
from typing import List, Mapping, Optional

import numpy as np

from .recall import RecallModel, predict_recall


def select_next(models: Mapping[str, Optional[RecallModel]], now: datetime.datetime) -> Optional[str]:
    """
    Pick the key whose predicted recall at `now` is lowest.

    Keys without a model (never learned, or unlearned) are not candidates.
    Ties go to the key encountered first in the mapping's iteration order, so
    callers should pass an insertion-ordered mapping built in a fixed order.

    Returns:
        The most urgently forgettable key, or None when nothing is learned.
    """
    keys: List[str] = []
    recalls: List[float] = []
    for key, model in models.items():
        if model is None:
            continue
        keys.append(key)
        recalls.append(predict_recall(model, now))

    if not keys:
        return None
    # argmin returns the first index among equal minima
    return keys[int(np.argmin(np.asarray(recalls, dtype=float)))]


def rank_keys(models: Mapping[str, Optional[RecallModel]], now: datetime.datetime) -> List[tuple[str, float]]:
    """All keys with their predicted recall, most urgent first; unknown keys last."""
    keys = list(models)
    recalls = np.asarray([predict_recall(models[k], now) for k in keys], dtype=float)
    order = np.argsort(recalls, kind="stable")
    return [(keys[i], float(recalls[i])) for i in order]
