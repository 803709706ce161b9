"""
sqlstudio.schemas - Data model for the workflow execution engine.

Job -> WorkflowDefinition -> Step -> TabularResult -> StepResult -> Execution

Lifecycle:
1. Job: Created and edited through the Job Service; read-only to the executor
2. WorkflowDefinition: Ordered steps plus the error handling mode
3. Step: QueryStep or MergeStep, discriminated by step_type
4. TabularResult: Table produced by a step, published to the table store
5. StepResult: Outcome of one step, appended in step order
6. Execution: Persisted record of one run
"""

from .job import (
    ErrorHandling,
    Job,
    JobType,
    JoinKey,
    MergeStep,
    MergeType,
    QueryStep,
    Step,
    StepType,
    WorkflowDefinition,
    parse_step,
)
from .table import TabularResult
from .execution import (
    Execution,
    ExecutionStatus,
    StepResult,
    StepStatus,
    TriggerType,
)

__all__ = [
    # Job
    "ErrorHandling",
    "Job",
    "JobType",
    "JoinKey",
    "MergeStep",
    "MergeType",
    "QueryStep",
    "Step",
    "StepType",
    "WorkflowDefinition",
    "parse_step",
    # Table
    "TabularResult",
    # Execution
    "Execution",
    "ExecutionStatus",
    "StepResult",
    "StepStatus",
    "TriggerType",
]
