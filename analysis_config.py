import os
from dataclasses import dataclass, field, replace as _replace
from typing import Optional, Tuple

from copula_families.base import CopulaFamily
from copula_families.registry import DEFAULT_FAMILIES, parse_family
from marginals.pseudo_obs import DEFAULT_EPSILON, MODES


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Settings for one condition's analysis: which families to fit, how many
    bootstrap replicates to spend on goodness of fit (0 reports the statistic
    only) and on stability, and how pseudo-observations are formed.
    """

    families: Tuple[CopulaFamily, ...] = DEFAULT_FAMILIES
    n_bootstrap_gof: int = 100
    n_bootstrap_stability: int = 100
    pseudo_obs_mode: str = "rank"
    epsilon: float = DEFAULT_EPSILON
    seed: int = 314159
    n_jobs: int = 1
    min_stability_successes: int = 10
    stability_interval: float = 0.95
    stability_cv_stable: float = 5.0
    stability_cv_marginal: float = 10.0
    stability_family: Optional[CopulaFamily] = None
    progress: bool = field(default=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "families", tuple(parse_family(f) for f in self.families))
        if not self.families:
            raise ValueError("At least one copula family must be requested.")
        if self.stability_family is not None:
            object.__setattr__(self, "stability_family", parse_family(self.stability_family))
        if self.pseudo_obs_mode not in MODES:
            raise ValueError(f"Unknown pseudo-observation mode: {self.pseudo_obs_mode!r}.")
        if self.n_bootstrap_gof < 0 or self.n_bootstrap_stability < 0:
            raise ValueError("Bootstrap replicate counts must be non-negative.")
        if not 0.0 < self.epsilon < 0.5:
            raise ValueError(f"epsilon must lie in (0, 0.5), got {self.epsilon}.")
        if not 0.0 < self.stability_interval < 1.0:
            raise ValueError(f"stability_interval must lie in (0, 1), got {self.stability_interval}.")

    @classmethod
    def from_env(cls, **overrides):
        """
        Defaults overridden by COPULA_FAMILIES (comma separated), N_BOOTSTRAP_GOF,
        N_BOOTSTRAP_STABILITY, PSEUDO_OBS_MODE, PSEUDO_OBS_EPSILON, COPULA_SEED
        and N_JOBS, then by keyword overrides.
        """
        values = {}
        families = os.getenv("COPULA_FAMILIES")
        if families:
            values["families"] = tuple(f for f in families.split(",") if f.strip())
        for name, key, cast in (
            ("N_BOOTSTRAP_GOF", "n_bootstrap_gof", int),
            ("N_BOOTSTRAP_STABILITY", "n_bootstrap_stability", int),
            ("PSEUDO_OBS_MODE", "pseudo_obs_mode", str),
            ("PSEUDO_OBS_EPSILON", "epsilon", float),
            ("COPULA_SEED", "seed", int),
            ("N_JOBS", "n_jobs", int),
        ):
            raw = os.getenv(name)
            if raw is not None and raw != "":
                values[key] = cast(raw)
        values.update(overrides)
        return cls(**values)

    def replace(self, **changes):
        return _replace(self, **changes)
