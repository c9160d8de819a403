"""Multi-model fallback management.

The FallbackManager rotates through a prioritized list of models, possibly
across providers. Each call outcome is reported back and classified by
cause:

- authorization/access errors and unavailability mark a model failed at once
- rate limits put a model on cooldown
- other errors count towards max_retries before the model is marked failed

Rate-limited models are re-checked every retry_interval reported outcomes,
not on a timer, so a model can stay on cooldown past its nominal expiry if
calls are infrequent. When no model is left the failed ones are reset and the
first model is used again.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .errors import ErrorKind, classify_error
from .models import FallbackOptions, Model, ModelState, ModelStatus, Provider

logger = logging.getLogger(__name__)

STATUS_ICONS = {
    ModelStatus.AVAILABLE: '[✓]',
    ModelStatus.RATE_LIMITED: '[~]',
    ModelStatus.FAILED: '[x]',
}


# State transitions

def record_success(state: ModelState, now: float) -> ModelState:
    return ModelState(status=ModelStatus.AVAILABLE, last_attempt=now, failures=0, rate_limited_at=None)


def record_failure(state: ModelState, now: float, kind: ErrorKind, max_retries: int) -> ModelState:
    """Apply a failed call to a model's state."""
    failures = state.failures + 1
    if kind in (ErrorKind.NOT_AUTHORIZED, ErrorKind.UNAVAILABLE):
        return ModelState(status=ModelStatus.FAILED, last_attempt=now, failures=failures)
    if kind == ErrorKind.RATE_LIMITED and state.status != ModelStatus.FAILED:
        return ModelState(status=ModelStatus.RATE_LIMITED, last_attempt=now,
                          failures=failures, rate_limited_at=now)
    if failures >= max_retries:
        return ModelState(status=ModelStatus.FAILED, last_attempt=now, failures=failures)
    return state.copy(last_attempt=now, failures=failures)


def expire_rate_limit(state: ModelState, now: float, cooldown_ms: float) -> ModelState:
    """Make a rate-limited model available again once its cooldown has passed."""
    if state.status != ModelStatus.RATE_LIMITED or state.rate_limited_at is None:
        return state
    if (now - state.rate_limited_at) * 1000 < cooldown_ms:
        return state
    return state.copy(status=ModelStatus.AVAILABLE, rate_limited_at=None, failures=0)


def reset_failed(state: ModelState) -> ModelState:
    if state.status != ModelStatus.FAILED:
        return state
    return state.copy(status=ModelStatus.AVAILABLE, failures=0)


def get_model_family(model_name: str) -> str:
    """Human-readable model family, used in access guidance."""
    if 'claude-sonnet-4' in model_name or 'claude-opus-4' in model_name:
        return 'Claude 4 (Latest)'
    if 'claude-3-7' in model_name or 'claude-3-5' in model_name:
        return 'Claude 3.5/3.7'
    if 'claude-3' in model_name:
        return 'Claude 3'
    if 'claude' in model_name:
        return 'Claude'
    return 'Unknown Model Family'


class FallbackManager:
    """Tracks model availability and picks the model to use next."""

    def __init__(self,
                 models: Sequence[Model],
                 options: Union[FallbackOptions, Dict[str, Any], None] = None,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the manager.

        Args:
            models: Models in priority order.
            options: FallbackOptions or a dict of option overrides.
            clock: Returns the current time in seconds.
        """
        if not models:
            raise ValueError("FallbackManager requires at least one model")

        self.models: List[Model] = list(models)
        if isinstance(options, FallbackOptions):
            self.options = options
        else:
            self.options = FallbackOptions.from_mapping(options)
        self._clock = clock

        self.model_states: Dict[str, ModelState] = {model.name: ModelState() for model in self.models}
        self.current_model_index = 0
        self.request_count = 0
        self.total_requests = 0

        logger.info(f"Fallback manager initialized with {len(self.models)} models")
        self.log_model_states()

    # Selection

    def get_current_model(self) -> Model:
        """
        Return the model to use for the next request.

        Never returns None: when nothing is available, failed models are reset
        and the first model is returned.
        """
        self.check_rate_limited_models()

        count = len(self.models)
        for offset in range(count):
            index = (self.current_model_index + offset) % count
            model = self.models[index]
            if self.model_states[model.name].status == ModelStatus.AVAILABLE:
                self.current_model_index = index
                logger.info(f"Using model: {model.display_name} (attempt {self.total_requests + 1})")
                return model

        logger.warning("No models available! Resetting all failed models and retrying...")
        self.reset_failed_models()
        self.current_model_index = 0
        first_model = self.models[0]
        logger.info(f"Fallback to first model: {first_model.display_name} (emergency fallback)")
        return first_model

    def move_to_next_model(self) -> None:
        """Advance to the next available model after the current one, if any."""
        previous = self.models[self.current_model_index]
        count = len(self.models)
        for offset in range(1, count):
            index = (self.current_model_index + offset) % count
            candidate = self.models[index]
            if self.model_states[candidate.name].status == ModelStatus.AVAILABLE:
                self.current_model_index = index
                logger.info(f"Switching from {previous.display_name} to {candidate.display_name}")
                return

        logger.warning("No alternative models available - staying with current model")

    # Outcome reporting

    def handle_model_result(self, model: Union[Model, str], success: bool, error: Optional[BaseException] = None) -> None:
        """
        Record the outcome of a call made with model.

        Args:
            model: The model (or model name) the call was made with.
            success: Whether the call succeeded.
            error: The error raised by a failed call.
        """
        self.total_requests += 1
        self.request_count += 1

        name = model.name if isinstance(model, Model) else str(model)
        state = self.model_states.get(name)
        if state is None:
            logger.warning(f"Ignoring result for unknown model: {name}")
            return
        display_name = self._display_name(name)
        now = self._clock()

        if success:
            self.model_states[name] = record_success(state, now)
            logger.info(f"Model {display_name} succeeded (request {self.total_requests})")
            self.log_model_states()
            return

        kind = classify_error(error)
        new_state = record_failure(state, now, kind, self.options.max_retries)
        self.model_states[name] = new_state

        if kind == ErrorKind.NOT_AUTHORIZED:
            self.log_model_authorization_warning(self._model_for(name), error)
        elif kind == ErrorKind.UNAVAILABLE:
            logger.warning(f"Model {display_name} is temporarily unavailable: {error}")
            logger.warning("Falling back to next available model...")
        elif new_state.status == ModelStatus.RATE_LIMITED:
            logger.warning(
                f"Model {display_name} rate limited - will retry in "
                f"{self.options.rate_limit_cooldown / 1000:.0f}s"
            )
        elif new_state.status == ModelStatus.FAILED:
            logger.warning(f"Model {display_name} failed {new_state.failures} times - marking as failed")
        else:
            logger.warning(
                f"Model {display_name} failed ({new_state.failures}/{self.options.max_retries}) - retrying"
            )

        if new_state.status != ModelStatus.AVAILABLE:
            self.move_to_next_model()

        self.log_model_states()

    # Recovery

    def check_rate_limited_models(self) -> None:
        """Every retry_interval outcomes, release rate-limited models whose cooldown has passed."""
        if self.request_count < self.options.retry_interval:
            return

        self.request_count = 0
        now = self._clock()
        for name, state in self.model_states.items():
            new_state = expire_rate_limit(state, now, self.options.rate_limit_cooldown)
            if new_state is not state:
                self.model_states[name] = new_state
                logger.info(f"Model {self._display_name(name)} cooldown expired - marking as available")

    def reset_failed_models(self) -> int:
        """Mark every failed model available again. Returns how many were reset."""
        reset_count = 0
        for name, state in self.model_states.items():
            if state.status == ModelStatus.FAILED:
                self.model_states[name] = reset_failed(state)
                reset_count += 1

        if reset_count:
            logger.info(f"Reset {reset_count} failed models to available")
        return reset_count

    def reset_model(self, model: Union[Model, str]) -> bool:
        """Explicitly make a model available again, clearing its failures and cooldown."""
        name = model.name if isinstance(model, Model) else str(model)
        if name not in self.model_states:
            return False
        self.model_states[name] = ModelState(last_attempt=self.model_states[name].last_attempt)
        logger.info(f"Model {self._display_name(name)} reset to available")
        return True

    # Reporting

    def log_model_authorization_warning(self, model: Optional[Model], error: Any) -> None:
        """Explain how to get access to a model the account cannot use."""
        if model is None:
            return
        if model.provider == Provider.AWS:
            family = get_model_family(model.name)
            logger.warning(f"AWS Bedrock model access required: {model.display_name}")
            logger.warning(f"Error: {error}")
            logger.warning(f"To use {family} models you need to:")
            logger.warning("   1. Open the AWS Bedrock console: https://console.aws.amazon.com/bedrock/")
            logger.warning("   2. Navigate to 'Model access' in the left sidebar")
            logger.warning("   3. Click 'Enable specific models' or 'Modify model access'")
            logger.warning(f"   4. Find '{family}' and click 'Enable'")
            logger.warning("   5. Wait for approval (may take a few minutes)")
        else:
            logger.warning(f"Model access issue: {model.display_name}")
            logger.warning(f"Error: {error}")
        logger.warning("Falling back to available model...")

    def log_model_states(self) -> None:
        if not logger.isEnabledFor(logging.INFO):
            return
        logger.info("Model status summary:")
        now = self._clock()
        for index, model in enumerate(self.models):
            state = self.model_states[model.name]
            marker = ' [CURRENT]' if index == self.current_model_index else ''
            details = ''
            if state.status == ModelStatus.RATE_LIMITED and state.rate_limited_at is not None:
                remaining_ms = max(0, self.options.rate_limit_cooldown - (now - state.rate_limited_at) * 1000)
                details = f" (cooldown: {remaining_ms / 1000:.0f}s)"
            elif state.failures > 0:
                details = f" (failures: {state.failures})"
            logger.info(f"  {STATUS_ICONS[state.status]} {model.display_name}{details}{marker}")
        logger.info(
            f"Total requests: {self.total_requests}, next retry check in: "
            f"{self.options.retry_interval - self.request_count} requests"
        )

    def get_stats(self) -> Dict[str, Any]:
        """Snapshot of request counts and per-model state, safe to mutate."""
        return {
            'total_requests': self.total_requests,
            'current_model': self.models[self.current_model_index],
            'model_states': {name: state.to_dict() for name, state in self.model_states.items()},
        }

    def _model_for(self, name: str) -> Optional[Model]:
        for model in self.models:
            if model.name == name:
                return model
        return None

    def _display_name(self, name: str) -> str:
        model = self._model_for(name)
        return model.display_name if model else name
