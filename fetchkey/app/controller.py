"""Application controller connecting the grid, the trainer and the results sink."""

import logging
from typing import Callable, Optional

from ..domain.qlearning import QLearningTrainer, StepResult, TrainingObserver
from ..domain.types import ConfigurationError, GridProvider, TrainingConfig, TrainingResult
from ..utils.metrics_export import DirectoryResultsSink, ResultsSink, export_results
from .fsm import RunState, RunStateMachine

logger = logging.getLogger(__name__)


class TrainingController:
    """
    Runs one training run at a time.

    A run is validated before it starts; configuration problems move the
    state machine to ERROR and no run happens. Finished runs are exported
    to the results sink when one is configured, and export failures never
    discard the in-memory result.
    """

    def __init__(self, grid: Optional[GridProvider] = None, config: Optional[TrainingConfig] = None,
                 observer: Optional[TrainingObserver] = None,
                 results_sink: Optional[ResultsSink] = None,
                 output_dir: Optional[str] = None):
        self._grid = grid
        self._config = config or TrainingConfig()
        self._observer = observer
        self._results_sink = results_sink
        self._output_dir = output_dir

        self._state_machine = RunStateMachine()
        self._trainer: Optional[QLearningTrainer] = None
        self._last_result: Optional[TrainingResult] = None
        self._last_error = ""
        self._last_export_ok: Optional[bool] = None

        self._state_machine.on_enter(RunState.TRAINING, self._on_training_entered)
        self._state_machine.on_enter(RunState.ERROR, self._on_error_entered)

    # Properties

    @property
    def grid(self) -> Optional[GridProvider]:
        return self._grid

    @property
    def config(self) -> TrainingConfig:
        return self._config

    @property
    def current_state(self) -> RunState:
        return self._state_machine.current_state

    @property
    def trainer(self) -> Optional[QLearningTrainer]:
        return self._trainer

    @property
    def last_result(self) -> Optional[TrainingResult]:
        return self._last_result

    @property
    def last_error(self) -> str:
        return self._last_error

    @property
    def last_export_ok(self) -> Optional[bool]:
        return self._last_export_ok

    # Setup

    def set_grid(self, grid: GridProvider) -> bool:
        """Swap the grid provider; refused while a run is active."""
        if self._state_machine.is_training():
            return False
        self._grid = grid
        return True

    def update_config(self, **kwargs):
        """Update training configuration; refused while a run is active."""
        if self._state_machine.is_training():
            raise RuntimeError("Cannot change the configuration while training")
        for key, value in kwargs.items():
            if not hasattr(self._config, key):
                raise AttributeError(f"Unknown configuration field: {key}")
            setattr(self._config, key, value)

    # Training

    def can_start_training(self) -> bool:
        """Check if training can be started."""
        return self._state_machine.can_start() or self._state_machine.is_error()

    def start_training(self, episodes: Optional[int] = None,
                       step_callback: Optional[Callable[[StepResult], None]] = None) -> Optional[TrainingResult]:
        """
        Run a full training session synchronously.

        Returns the result, or None if the run was rejected (already
        training) or could not start (configuration error). Exceptions
        raised while stepping move the controller to ERROR and propagate.
        """
        if not self.can_start_training():
            logger.warning("Training already in progress; start request rejected")
            return None

        if self._state_machine.is_error():
            self._state_machine.reset_to_idle()

        trainer = QLearningTrainer(self._grid, self._config, self._observer)
        try:
            run = trainer.iter_training(episodes)
        except ConfigurationError as e:
            self._last_error = str(e)
            self._state_machine.fail_error({"error": self._last_error})
            return None

        self._trainer = trainer
        self._last_error = ""
        self._state_machine.start_training(
            {"episodes": self._config.max_episodes if episodes is None else episodes})

        try:
            with run:
                for step in run:
                    if step_callback is not None:
                        step_callback(step)
        except BaseException as e:
            # Leave TRAINING whatever stopped the run
            self._last_error = str(e) or type(e).__name__
            self._state_machine.fail_error({"error": self._last_error})
            raise

        result = trainer.result()
        self._last_result = result
        self._state_machine.finish()

        self._last_export_ok = self._export(result)
        return result

    def _export(self, result: TrainingResult) -> Optional[bool]:
        sink = self._results_sink
        if sink is None and self._output_dir:
            sink = DirectoryResultsSink(self._output_dir, result.reward_mode)
        if sink is None:
            return None

        ok = export_results(result, self._config, sink)
        if ok and isinstance(sink, DirectoryResultsSink):
            logger.info("CSV exported: %s", sink.csv_path)
        return ok

    # State callbacks

    def _on_training_entered(self, context):
        logger.debug("Training started: %s", context)

    def _on_error_entered(self, context):
        logger.error("Training failed: %s", self._last_error)

    # Utility methods

    def get_statistics(self) -> dict:
        """Get current training statistics."""
        stats = {
            "current_state": self._state_machine.current_state.name,
            "state_description": self._state_machine.get_state_description(),
            "episodes_completed": 0,
            "current_epsilon": self._config.epsilon,
            "episodes_until_first_success": None,
            "success_rate": 0.0,
        }
        if self._trainer is not None:
            stats["episodes_completed"] = len(self._trainer.training_history)
            stats["current_epsilon"] = self._trainer.epsilon
            stats["episodes_until_first_success"] = self._trainer.episodes_until_first_success
        if self._last_result is not None:
            stats["success_rate"] = self._last_result.success_rate
        return stats
