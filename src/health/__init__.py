"""Health subsystem — prober/aggregator engine, report renderer, scheduler."""

from .engine import Bucket, OutcomeKind, ProbeOutcome, ProbeResult, check_all, probe_target
from .report import CycleReport, build_report, render, render_report
from .scheduler import HealthScheduler, SchedulerState
