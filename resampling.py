import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplicateOutcome:
    index: int
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None


def spawn_seeds(seed, n):
    """
    Independent child seeds for n replicates.

    Parameters:
        seed: int, SeedSequence or None.
        n: int
            Number of replicates.

    Returns:
        List of SeedSequence children. A SeedSequence argument is copied first so
        the same input always spawns the same children.
    """
    if isinstance(seed, np.random.SeedSequence):
        seed = np.random.SeedSequence(seed.entropy, spawn_key=seed.spawn_key, pool_size=seed.pool_size)
    else:
        seed = np.random.SeedSequence(seed)
    return seed.spawn(n)


def run_replicates(func, seeds, n_jobs=1, progress=False, desc=None):
    """
    Map func(index, seed) over replicate seeds.

    func must return a ReplicateOutcome; a failed replicate is reported through
    its error field and never aborts the others. Results are ordered by index.
    """
    items = list(enumerate(seeds))
    if n_jobs == 1:
        outcomes = [func(i, s) for i, s in tqdm(items, desc=desc, disable=not progress)]
    else:
        outcomes = Parallel(n_jobs=n_jobs)(delayed(func)(i, s) for i, s in items)
    outcomes = sorted(outcomes, key=lambda o: o.index)
    n_failed = sum(1 for o in outcomes if not o.ok)
    if n_failed:
        logger.warning("%d of %d %s replicates failed", n_failed, len(outcomes), desc or "bootstrap")
    return outcomes


def successful_values(outcomes):
    return [o.value for o in outcomes if o.ok]
