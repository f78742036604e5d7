"""Run options for the correlation pipeline."""

from dataclasses import dataclass

from fiscal_correlator.solver.execution import DEFAULT_PARTITIONS

# Default number of categories kept in each ranked breakdown.
DEFAULT_ITEMS = 5


@dataclass(frozen=True)
class CorrelationOptions:
    """Options for one correlation run."""

    items: int = DEFAULT_ITEMS
    workers: int | None = None
    partitions: int = DEFAULT_PARTITIONS
    show_missing: bool = False
    show_correlations: bool = False

    def __post_init__(self) -> None:
        if self.items < 0:
            raise ValueError(f"items must be >= 0, got {self.items}")
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.partitions < 1:
            raise ValueError(f"partitions must be >= 1, got {self.partitions}")
