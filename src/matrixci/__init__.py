from .dsl import sh, matrix, pipeline, PipelineBuilder, build
from .model import Pipeline, Step, TriggerEvent, RunResult, CellResult, StepResult
from .runner import run_pipeline, run_cell, load_pipeline
from .step_workflows.toolchains import verification_steps
from .trigger import should_trigger

__all__ = [
    "sh",
    "matrix",
    "pipeline",
    "PipelineBuilder",
    "build",
    "Pipeline",
    "Step",
    "TriggerEvent",
    "RunResult",
    "CellResult",
    "StepResult",
    "run_pipeline",
    "run_cell",
    "load_pipeline",
    "verification_steps",
    "should_trigger",
]
