# forecast_config.py
# Caller-supplied forecasting parameters
# Validated once at construction, immutable afterwards

from pathlib import Path
from typing import Annotated, Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt


class ForecastConfig(BaseModel):
    """
    Parameters for one forecasting run.

    Defaults match the batch settings the model was tuned with:
    70% training share, 0.2% neutral band, add-one smoothing, depths 1..8.
    Unknown keys, NaN/inf and booleans-as-integers are rejected.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    train_percent: float = Field(default=70.0, gt=0, lt=100)             # Share of returns used for training
    k: float = Field(default=0.002, ge=0)                                 # Neutral band half-width for state encoding
    alpha: float = Field(default=1.0, ge=0)                               # Laplace smoothing strength
    max_memory: StrictInt = Field(default=8, ge=1)                        # Largest memory depth tried
    max_workers: Optional[Annotated[StrictInt, Field(ge=1)]] = None       # Threads for the depth search, None = sequential

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ForecastConfig':
        """
        Build a config from a plain dict.

        Raises:
            ValueError: On unknown keys or invalid values
                (pydantic.ValidationError is a ValueError)
        """
        return cls.model_validate(data)

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> 'ForecastConfig':
        """
        Load a config from a JSON object file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: On malformed JSON, unknown keys or invalid values
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"Config file not found: {filepath}")

        return cls.model_validate_json(filepath.read_text())

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()
