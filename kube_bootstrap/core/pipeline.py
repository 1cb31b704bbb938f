"""Sequential provisioning pipeline.

A pipeline is an ordered list of named steps. Steps run one after the
other; the first step that raises stops the run and is reported as the
failed step. There are no backward transitions and no partial rollback.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)

STATUS_SUCCESS = "SUCCESS"
STATUS_FAILED = "FAILED"


@dataclass
class PipelineStep:
    """One named step of a pipeline."""

    name: str
    description: str
    action: Callable[[], Any]


@dataclass
class PipelineResult:
    """Outcome of a pipeline run."""

    pipeline: str
    status: str = STATUS_FAILED
    steps_completed: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS


class Pipeline:
    """Runs steps in order and halts on the first failure."""

    def __init__(self, name: str, steps: Optional[List[PipelineStep]] = None) -> None:
        self.name = name
        self.steps: List[PipelineStep] = list(steps or [])

    def add_step(self, name: str, description: str, action: Callable[[], Any]) -> None:
        """Append a step to the pipeline.

        Raises:
            ValueError: When a step with the same name already exists
        """
        if name in self.step_names:
            raise ValueError(f"Duplicate pipeline step: {name}")
        self.steps.append(PipelineStep(name, description, action))

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def run(self) -> PipelineResult:
        """Run every step in order.

        Returns:
            PipelineResult; status is FAILED and failed_step is set when a
            step raised, in which case no later step ran
        """
        result = PipelineResult(pipeline=self.name)
        total = len(self.steps)

        print(f"🚀 Starting {self.name}...")
        logger.info(f"Starting pipeline '{self.name}' with {total} step(s)")

        for index, step in enumerate(self.steps, start=1):
            print(f"\n📋 Step {index}/{total}: {step.description}...")
            try:
                result.outputs[step.name] = step.action()
            except Exception as e:
                result.failed_step = step.name
                result.errors.append(str(e))
                logger.error(f"Step '{step.name}' of '{self.name}' failed: {e}")
                print(f"❌ Step '{step.name}' failed: {e}")
                return result

            result.steps_completed.append(step.name)
            print(f"✅ {step.description} completed")

        result.status = STATUS_SUCCESS
        logger.info(f"Pipeline '{self.name}' completed")
        print(f"\n🎉 {self.name} completed successfully!")
        return result
