"""
Pipeline configuration for looking-accuracy analyses.
"""
import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CORRECT_LABEL = "Correct"
MISPRONOUNCED_LABEL = "Mispronounced"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Parameters threaded through the ETL and analysis entry points.

    Parameters:
    -----------
    dataset_name : str
        Identifier of the dataset every input table is scoped to
    correct_code, mispronounced_code, filler_code : str
        Raw condition codes used by the dataset's trial types
    window_start_ms, window_end_ms : int
        Inclusive ``t_norm`` window used for window summaries
    z_value : float
        Normal quantile for the confidence half-width, by default 1.96
    min_subjects : int
        Minimum contributing subjects for a defined half-width, by default 2
    min_age_months, max_age_months : Optional[float]
        Optional inclusive age restriction applied after normalization
    t_norm_min, t_norm_max : int
        Time range shown in timecourse plots
    """
    dataset_name: str = ""
    correct_code: str = "cp"
    mispronounced_code: str = "mp"
    filler_code: str = "filler"
    window_start_ms: int = 300
    window_end_ms: int = 2000
    z_value: float = 1.96
    min_subjects: int = 2
    min_age_months: Optional[float] = None
    max_age_months: Optional[float] = None
    t_norm_min: int = -1000
    t_norm_max: int = 3000

    @property
    def condition_labels(self) -> Dict[str, str]:
        return {
            self.correct_code: CORRECT_LABEL,
            self.mispronounced_code: MISPRONOUNCED_LABEL,
        }

    @property
    def window(self):
        return self.window_start_ms, self.window_end_ms

    def validate(self) -> "PipelineConfig":
        if self.window_start_ms > self.window_end_ms:
            raise ValueError(
                f"Window start ({self.window_start_ms}) is after window end ({self.window_end_ms})"
            )
        if self.min_subjects < 2:
            raise ValueError("min_subjects must be at least 2 for a sample standard deviation")
        codes = {self.correct_code, self.mispronounced_code, self.filler_code}
        if len(codes) != 3:
            raise ValueError("Condition codes must be three distinct values")
        if (self.min_age_months is not None and self.max_age_months is not None
                and self.min_age_months > self.max_age_months):
            raise ValueError("min_age_months is greater than max_age_months")
        return self


def load_config(path: Optional[str] = None, **overrides: Any) -> PipelineConfig:
    """
    Build a configuration from an optional JSON file plus keyword overrides.

    Keyword overrides whose value is ``None`` are ignored so that unset
    command-line flags do not clobber values from the file.

    Parameters:
    -----------
    path : Optional[str], optional
        Path to a JSON object with ``PipelineConfig`` field names, by default None
    **overrides : Any
        Field values taking precedence over the file

    Returns:
    --------
    PipelineConfig
        Validated configuration
    """
    values: Dict[str, Any] = {}
    if path:
        with open(Path(path), 'r') as f:
            values.update(json.load(f))
        logger.debug("Loaded configuration from %s", path)
    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(PipelineConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {unknown}")

    return replace(PipelineConfig(), **values).validate()
