"""
Pipeline Runner.

Reads an observation block by block, runs each block through the
visibility pipeline and hands the result to a writer.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

from uvjones.coords.frames import Direction
from uvjones.core.block import BlockContext
from uvjones.core.calibrate import JonesSolutions
from uvjones.core.processor import VisibilityPipeline
from uvjones.core.stats import BlockStats
from uvjones.errors import ShapeMismatchError
from uvjones.io.base import VisReader, VisWriter, get_reader, get_writer
from uvjones.io.table_io import jones_for_observation
from uvjones.pipeline.config_parser import PipelineConfig, load_config

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Outcome of a pipeline run."""
    blocks_processed: int = 0
    blocks_failed: int = 0
    stats: BlockStats = field(default_factory=BlockStats)
    failures: List[str] = field(default_factory=list)


class PipelineRunner:
    """
    Run the visibility pipeline from configuration.

    Parameters
    ----------
    config : PipelineConfig
        Parsed configuration
    verbose : bool
        Print progress
    reader : VisReader, optional
        Use this reader instead of building one from ``config.input``
    writer : VisWriter, optional
        Use this writer instead of building one from ``config.output``
    """

    def __init__(
        self,
        config: PipelineConfig,
        verbose: bool = True,
        reader: Optional[VisReader] = None,
        writer: Optional[VisWriter] = None,
    ):
        self.config = config
        self.verbose = verbose
        self.reader = reader
        self.writer = writer

    def _print(self, msg: str):
        """Print if verbose."""
        if self.verbose:
            print(f"[UVJONES] {msg}")

    def _open_reader(self) -> VisReader:
        if self.reader is not None:
            return self.reader
        options = dict(self.config.input.options)
        if self.config.array is not None:
            options.setdefault("array_location", self.config.array.to_location())
        return get_reader(self.config.input.name, **options)

    def _open_writer(self) -> VisWriter:
        if self.writer is not None:
            return self.writer
        return get_writer(self.config.output.name, **self.config.output.options)

    def _solutions(self, context: BlockContext, antennas: Sequence[int]) -> Optional[JonesSolutions]:
        """Jones solutions interpolated onto one block, or None."""
        cal = self.config.calibration
        if cal is None:
            return None
        return jones_for_observation(
            cal.table,
            cal.terms,
            context.epochs,
            context.frequencies,
            antennas,
            time_interp=cal.time_interp,
            freq_interp=cal.freq_interp,
            mode=cal.mode,
        )

    def run(self) -> RunSummary:
        """
        Process every block of the input.

        A block whose arrays do not fit together is reported and skipped;
        other errors stop the run.

        Returns
        -------
        RunSummary
        """
        summary = RunSummary()
        reader = self._open_reader()
        try:
            writer = self._open_writer()
            try:
                self._run(reader, writer, summary)
            finally:
                writer.close()
        finally:
            reader.close()

        self._print(f"\n{'='*60}")
        self._print(f"Blocks processed: {summary.blocks_processed}, failed: {summary.blocks_failed}")
        self._print(f"Totals: {summary.stats.summary()}")
        self._print(f"{'='*60}")
        return summary

    def _run(self, reader: VisReader, writer: VisWriter, summary: RunSummary) -> None:
        layout = reader.layout()
        _, integration = reader.times()
        _, width = reader.frequencies()
        processing = self.config.processing.resolved(integration, width)
        selection = reader.resolve_selection(processing.selection)

        # averaging bins never straddle blocks
        block_times = processing.block_times
        if block_times % processing.time_average:
            block_times += processing.time_average - block_times % processing.time_average
            self._print(f"Block size raised to {block_times} timesteps (multiple of time_average)")
        processing = replace(processing, block_times=block_times)

        centre = None
        if processing.phase_centre is not None:
            centre = Direction.from_degrees(*processing.phase_centre)

        self._print(f"\n{'='*60}")
        n_time, n_baseline, n_chan = selection.get_shape()
        self._print(f"Input: {self.config.input.name} ({len(layout)} antennas, "
                    f"{n_time} timesteps, {n_baseline} baselines, {n_chan} channels)")
        if processing.selection is not None:
            self._print(f"Selection: {selection}")
        self._print(f"Memory per block: {selection.estimate_bytes_best(block_times) / 2**20:.1f} MiB")
        self._print(f"Output: {self.config.output.name}")
        self._print(f"Averaging: {processing.time_average} x {processing.freq_average} "
                    f"(time x freq), backend: {processing.backend}")
        if centre is not None:
            self._print(f"Phase centre: {centre}")
        if self.config.calibration is not None:
            cal = self.config.calibration
            self._print(f"Calibration: {','.join(cal.terms)} from {cal.table} ({cal.mode})")
        self._print(f"{'='*60}")

        writer.begin(layout)
        with VisibilityPipeline(layout, processing) as pipeline:
            for i, (vis, flagweight, context) in enumerate(reader.iter_blocks(block_times, selection)):
                try:
                    jones = self._solutions(context, layout.identifiers)
                    block = pipeline.process(vis, flagweight, context, jones=jones, phase_centre=centre)
                except ShapeMismatchError as e:
                    summary.blocks_failed += 1
                    summary.failures.append(f"block {i}: {e}")
                    logger.error("Block %d skipped: %s", i, e)
                    self._print(f"Block {i}: SKIPPED ({e})")
                    continue

                writer.write(block)
                summary.blocks_processed += 1
                summary.stats = summary.stats + block.stats
                self._print(f"Block {i}: {block.stats.summary()}")


def run_pipeline(config_path: str, verbose: bool = True) -> RunSummary:
    """
    Run the pipeline from a config file.

    Parameters
    ----------
    config_path : str
        Path to YAML config file
    verbose : bool
        Print progress
    """
    config = load_config(config_path)
    runner = PipelineRunner(config=config, verbose=verbose)
    return runner.run()
