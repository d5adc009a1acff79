"""
Per-block diagnostic counters.

Counts are in cells, one cell being one (time, baseline, channel) with all
of its polarisations.
"""

from dataclasses import dataclass, fields


@dataclass
class BlockStats:
    """Flag accounting for one processed block."""
    n_cells: int = 0
    n_flagged_input: int = 0
    n_flagged_antenna: int = 0
    n_flagged_missing_jones: int = 0
    n_flagged_nonfinite: int = 0
    n_flagged_singular: int = 0

    @property
    def n_flagged_due_to_error(self) -> int:
        """Cells flagged because calibration could not be applied."""
        return self.n_flagged_missing_jones + self.n_flagged_nonfinite + self.n_flagged_singular

    @property
    def fraction_flagged_due_to_error(self) -> float:
        if self.n_cells == 0:
            return 0.0
        return self.n_flagged_due_to_error / self.n_cells

    def __add__(self, other: "BlockStats") -> "BlockStats":
        if not isinstance(other, BlockStats):
            return NotImplemented
        return BlockStats(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })

    def summary(self) -> str:
        return (
            f"{self.n_cells} cells, {self.n_flagged_input} flagged on input, "
            f"{self.n_flagged_antenna} by antenna, "
            f"{self.n_flagged_due_to_error} due to error "
            f"(missing={self.n_flagged_missing_jones}, nonfinite={self.n_flagged_nonfinite}, "
            f"singular={self.n_flagged_singular})"
        )
