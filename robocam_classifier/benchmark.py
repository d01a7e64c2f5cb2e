"""
Catalog latency benchmark.

Every catalog model goes through a warmup phase (samples discarded) and a
measuring phase (samples averaged). The state machine is a set of pure
functions over an immutable BenchmarkState; the coordinator executes the model
loads they request and feeds classified frames back in.

    start() -> WARMUP -> MEASURING -> WARMUP (next model) ... -> IDLE + report
"""
import json
import os
import statistics
import sys
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .config import MEASURE_SECONDS, WARMUP_SECONDS


class Phase(Enum):
    IDLE = "idle"
    WARMUP = "warmup"
    MEASURING = "measuring"


@dataclass(frozen=True)
class BenchmarkConfig:
    warmup_seconds: float = WARMUP_SECONDS
    measure_seconds: float = MEASURE_SECONDS


@dataclass(frozen=True)
class BenchmarkEntry:
    model_id: str
    mean_ms: float
    sample_count: int = 0
    min_ms: float = 0.0
    max_ms: float = 0.0
    failed: bool = False

    @property
    def name(self):
        return os.path.basename(self.model_id)


@dataclass(frozen=True)
class BenchmarkReport:
    """Per-model mean inference times in catalog order"""
    entries: Tuple[BenchmarkEntry, ...] = ()

    def ranked(self):
        """Fastest model first, ties keep catalog order, failed models last"""
        return sorted(self.entries, key=lambda entry: (entry.failed, entry.mean_ms))

    def as_mapping(self):
        return {entry.model_id: entry.mean_ms for entry in self.entries}

    def __len__(self):
        return len(self.entries)


@dataclass(frozen=True)
class BenchmarkState:
    phase: Phase = Phase.IDLE
    catalog: Tuple[str, ...] = ()
    model_index: int = 0
    phase_start: Optional[float] = None  # None until the requested model is ready
    samples: Tuple[float, ...] = ()
    entries: Tuple[BenchmarkEntry, ...] = ()
    restore_model: Optional[str] = None

    @property
    def active(self):
        return self.phase is not Phase.IDLE

    @property
    def current_model(self):
        if not self.catalog:
            return None
        return self.catalog[self.model_index]


@dataclass(frozen=True)
class BenchmarkTransition:
    """New state plus the side effects the coordinator has to run"""
    state: BenchmarkState
    load_model: Optional[str] = None
    report: Optional[BenchmarkReport] = None


@dataclass(frozen=True)
class BenchmarkProgress:
    model_index: int
    total_models: int
    model_id: Optional[str]
    phase: Phase
    elapsed_seconds: float


def mean_inference_time(samples):
    """Plain arithmetic mean, 0.0 when nothing was collected"""
    if not samples:
        return 0.0
    return sum(samples) / len(samples)


def summarize_samples(model_id, samples):
    return BenchmarkEntry(
        model_id=model_id,
        mean_ms=mean_inference_time(samples),
        sample_count=len(samples),
        min_ms=float(min(samples)) if samples else 0.0,
        max_ms=float(max(samples)) if samples else 0.0,
    )


def start(catalog, restore_model=None):
    """Reset results and request the first catalog model"""
    catalog = tuple(catalog)
    if not catalog:
        return BenchmarkTransition(
            state=BenchmarkState(restore_model=restore_model),
            report=BenchmarkReport(),
        )

    state = BenchmarkState(
        phase=Phase.WARMUP,
        catalog=catalog,
        model_index=0,
        restore_model=restore_model,
    )
    return BenchmarkTransition(state=state, load_model=catalog[0])


def model_ready(state, now):
    """Stamp the phase start once the requested model is loaded"""
    if not state.active:
        return state
    return replace(state, phase_start=now, samples=())


def record_sample(state, inference_ms, now, config=BenchmarkConfig()):
    """Feed one classified frame into the state machine"""
    if not state.active or state.phase_start is None:
        return BenchmarkTransition(state=state)

    elapsed = now - state.phase_start

    if state.phase is Phase.WARMUP:
        # Warmup samples are never recorded
        if elapsed >= config.warmup_seconds:
            state = replace(state, phase=Phase.MEASURING, phase_start=now, samples=())
        return BenchmarkTransition(state=state)

    samples = state.samples + (float(inference_ms),)
    if elapsed < config.measure_seconds:
        return BenchmarkTransition(state=replace(state, samples=samples))

    entries = state.entries + (summarize_samples(state.current_model, samples),)
    return _next_model(state, entries)


def skip_model(state):
    """Record the current model as failed and move on to the next one"""
    if not state.active:
        return BenchmarkTransition(state=state)

    entry = BenchmarkEntry(model_id=state.current_model, mean_ms=0.0, failed=True)
    return _next_model(state, state.entries + (entry,))


def _next_model(state, entries):
    if state.model_index < len(state.catalog) - 1:
        next_index = state.model_index + 1
        state = replace(
            state,
            phase=Phase.WARMUP,
            model_index=next_index,
            phase_start=None,
            samples=(),
            entries=entries,
        )
        return BenchmarkTransition(state=state, load_model=state.catalog[next_index])

    state = replace(state, phase=Phase.IDLE, phase_start=None, samples=(), entries=entries)
    return BenchmarkTransition(state=state, report=BenchmarkReport(entries))


def progress(state, now):
    elapsed = 0.0 if state.phase_start is None else max(now - state.phase_start, 0.0)
    return BenchmarkProgress(
        model_index=state.model_index,
        total_models=len(state.catalog),
        model_id=state.current_model,
        phase=state.phase,
        elapsed_seconds=elapsed,
    )


def print_report(report, file=None):
    """Print formatted benchmark results"""
    file = file or sys.stdout
    print(f"\n{'='*60}", file=file)
    print("BENCHMARK RESULTS", file=file)
    print(f"{'='*60}", file=file)

    if not report.entries:
        print("No models were benchmarked.", file=file)
        return

    for rank, entry in enumerate(report.ranked(), start=1):
        if entry.failed:
            print(f"{rank:>3}. {entry.name:<36}   FAILED (model could not be loaded)", file=file)
            continue
        print(f"{rank:>3}. {entry.name:<36} {entry.mean_ms:8.2f} ms"
              f"  (n={entry.sample_count}, {entry.min_ms:.0f}-{entry.max_ms:.0f} ms)",
              file=file)

    means = [entry.mean_ms for entry in report.entries if not entry.failed]
    if means:
        print(f"\n📊 Median of means: {statistics.median(means):.2f} ms", file=file)


def save_report(report, output_file=None, use_accelerator=False):
    """Save ranked results to a JSON file and return its path"""
    if output_file is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_file = f"benchmark_{timestamp}.json"

    uname = os.uname()
    results = {
        'system_info': {
            'python_version': sys.version,
            'platform': uname.sysname + ' ' + uname.release,
            'architecture': uname.machine,
            'timestamp': datetime.now().isoformat(),
            'use_accelerator': use_accelerator,
        },
        'results': [
            {
                'rank': rank,
                'model': entry.model_id,
                'mean_ms': entry.mean_ms,
                'samples': entry.sample_count,
                'min_ms': entry.min_ms,
                'max_ms': entry.max_ms,
                'failed': entry.failed,
            }
            for rank, entry in enumerate(report.ranked(), start=1)
        ],
    }

    with open(output_file, 'w') as f:
        json.dump(results, f, indent=2, default=str)

    return output_file
