"""Model catalog and selection policy."""

from dataclasses import dataclass, field
from typing import Any

from gateway.errors import AppError, ErrorCode
from gateway.models.model_config import ModelCapabilities, ModelConfig, ModelProvider, ModelType, TaskType
from gateway.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MODELS: list[ModelConfig] = [
    ModelConfig(
        id="simple-chat",
        name="cognitivecomputations/dolphin-mistral-24b-venice-edition:free",
        provider=ModelProvider.OPENROUTER,
        capabilities=ModelCapabilities(streaming=True),
        max_tokens=200,
    ),
    ModelConfig(
        id="tools-chat",
        name="meta-llama/llama-4-scout:free",
        provider=ModelProvider.OPENROUTER,
        capabilities=ModelCapabilities(tools=True, streaming=True),
        max_tokens=500,
    ),
    ModelConfig(
        id="image-generation",
        name="google/gemini-2.5-flash-image-preview:free",
        provider=ModelProvider.OPENROUTER,
        capabilities=ModelCapabilities(image_generation=True),
        max_tokens=0,
    ),
    ModelConfig(
        id="vision-chat",
        name="meta-llama/llama-3.2-11b-vision-instruct:free",
        provider=ModelProvider.OPENROUTER,
        capabilities=ModelCapabilities(tools=True, vision=True, streaming=True),
        max_tokens=400,
    ),
    ModelConfig(
        id="claude-chat",
        name="claude-3-5-sonnet-20241022",
        provider=ModelProvider.ANTHROPIC,
        capabilities=ModelCapabilities(tools=True, vision=True, streaming=True),
        max_tokens=1000,
    ),
    ModelConfig(
        id="speech-generation",
        name="gpt-4o-mini-tts",
        provider=ModelProvider.OPENAI,
        capabilities=ModelCapabilities(audio_processing=True),
        max_tokens=0,
    ),
]


@dataclass
class ValidationResult:
    """Outcome of validating a model config."""

    success: bool
    data: ModelConfig | None = None
    errors: list[str] = field(default_factory=list)


def validate_model_config(config: ModelConfig) -> ValidationResult:
    """Check the catalog invariants of a model config."""
    errors: list[str] = []

    if not config.id or not config.id.strip():
        errors.append("Model ID is required")
    if not config.name or not config.name.strip():
        errors.append("Model name is required")
    if config.provider not in set(ModelProvider):
        errors.append("Invalid model provider")
    if config.max_tokens < 0:
        errors.append("Max tokens must be non-negative")
    if config.capabilities is None:
        errors.append("Model capabilities must be defined")

    if errors:
        return ValidationResult(success=False, errors=errors)
    return ValidationResult(success=True, data=config)


class ModelConfigRegistry:
    """In-memory catalog of models with task and provider indices."""

    def __init__(self, models: list[ModelConfig] | None = None):
        self._models: dict[str, ModelConfig] = {}
        self._by_task: dict[TaskType, list[ModelConfig]] = {}
        self._by_provider: dict[ModelProvider, list[ModelConfig]] = {}

        for model in DEFAULT_MODELS if models is None else models:
            validation = validate_model_config(model)
            if validation.success:
                self._models[model.id] = model
            else:
                logger.error(f"Invalid model config for {model.id!r}: {validation.errors}")

        self._build_indexes()

    def _build_indexes(self) -> None:
        self._by_task = {}
        self._by_provider = {}

        for model in self._models.values():
            capabilities = model.capabilities
            if capabilities.image_generation:
                self._by_task.setdefault(TaskType.IMAGE, []).append(model)
            if capabilities.vision:
                self._by_task.setdefault(TaskType.VISION, []).append(model)
            if capabilities.audio_processing:
                self._by_task.setdefault(TaskType.AUDIO, []).append(model)
            self._by_task.setdefault(TaskType.CHAT, []).append(model)

            self._by_provider.setdefault(model.provider, []).append(model)

    def get_model(self, model_id: str) -> ModelConfig | None:
        return self._models.get(model_id)

    def get_all_models(self) -> list[ModelConfig]:
        return [model for model in self._models.values() if model.is_active]

    def get_models_by_task(self, task: TaskType) -> list[ModelConfig]:
        return [model for model in self._by_task.get(task, []) if model.is_active]

    def get_models_by_provider(self, provider: ModelProvider) -> list[ModelConfig]:
        return [model for model in self._by_provider.get(provider, []) if model.is_active]

    def add_model(self, config: ModelConfig) -> ValidationResult:
        validation = validate_model_config(config)
        if validation.success:
            self._models[config.id] = config
            self._build_indexes()
        else:
            logger.error(f"Rejected model config {config.id!r}: {validation.errors}")
        return validation

    def update_model(self, model_id: str, updates: dict[str, Any]) -> ValidationResult:
        existing = self._models.get(model_id)
        if existing is None:
            return ValidationResult(success=False, errors=[f"Model with ID '{model_id}' not found"])

        updated = existing.model_copy(update={**updates, "id": model_id})
        validation = validate_model_config(updated)
        if validation.success:
            self._models[model_id] = updated
            self._build_indexes()
        return validation

    def remove_model(self, model_id: str) -> bool:
        if self._models.pop(model_id, None) is None:
            return False
        self._build_indexes()
        return True


class ModelSelector:
    """Deterministic model selection on top of the registry."""

    def __init__(self, registry: ModelConfigRegistry | None = None):
        self.registry = registry or ModelConfigRegistry()

    def select_model(self, model_type: ModelType | str, task_type: TaskType, use_memory: bool) -> ModelConfig:
        """Pick the model for a request.

        Candidates are the active models indexed for the task, filtered by the
        requested model type; the first survivor wins. When none survive a
        capability-based fallback is tried.

        Args:
            model_type: Requested conversation style
            task_type: Requested task
            use_memory: Whether conversation memory is requested

        Returns:
            The selected ModelConfig

        Raises:
            AppError: MODEL_NOT_FOUND when nothing fits
        """
        try:
            candidates = self.registry.get_models_by_task(task_type)
            if not candidates:
                raise AppError(ErrorCode.MODEL_NOT_FOUND, f"No models available for task type: {task_type}")

            filtered = [model for model in candidates if self._matches_type(model, model_type, use_memory)]
            if filtered:
                return filtered[0]

            fallback = self._find_fallback_model(task_type, use_memory)
            if fallback is not None:
                logger.warning(f"Using fallback model {fallback.id} for {model_type}/{task_type}")
                return fallback

            raise AppError(
                ErrorCode.MODEL_NOT_FOUND, f"No suitable models found for {model_type} with task {task_type}"
            )
        except AppError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error during model selection: {e}", exc_info=True)
            raise AppError(
                ErrorCode.INTERNAL_SERVER_ERROR,
                "Unexpected error during model selection",
                {"originalError": str(e)},
            ) from e

    @staticmethod
    def _matches_type(model: ModelConfig, model_type: ModelType | str, use_memory: bool) -> bool:
        match model_type:
            case ModelType.SIMPLE:
                return not use_memory and not model.capabilities.tools
            case ModelType.WITH_TOOLS | ModelType.MEMORY:
                return model.capabilities.tools
            case _:
                return True

    def _find_fallback_model(self, task_type: TaskType, use_memory: bool) -> ModelConfig | None:
        models = self.registry.get_all_models()

        if task_type == TaskType.IMAGE:
            return next((m for m in models if m.capabilities.image_generation), None)
        if task_type == TaskType.VISION:
            return next((m for m in models if m.capabilities.vision), None)
        if task_type == TaskType.AUDIO:
            return next((m for m in models if m.capabilities.audio_processing), None)

        if use_memory:
            return next((m for m in models if m.capabilities.tools), None)
        return models[0] if models else None

    def supports_tools(self, model_type: ModelType | str, use_memory: bool) -> bool:
        """Whether the request asks for tool use.

        This reflects the request only. The selected model may still lack the
        tools capability when the fallback path was taken, e.g. WITH_TOOLS for
        an IMAGE task resolves to an image model without tools.
        """
        return model_type in (ModelType.WITH_TOOLS, ModelType.MEMORY) or use_memory

    def get_model_config(self, model_id: str) -> ModelConfig | None:
        return self.registry.get_model(model_id)

    def get_available_models(self) -> list[ModelConfig]:
        return self.registry.get_all_models()

    def get_models_by_task(self, task: TaskType) -> list[ModelConfig]:
        return self.registry.get_models_by_task(task)

    def get_models_by_provider(self, provider: ModelProvider) -> list[ModelConfig]:
        return self.registry.get_models_by_provider(provider)

    def add_model(self, config: ModelConfig) -> ValidationResult:
        return self.registry.add_model(config)

    def update_model(self, model_id: str, updates: dict[str, Any]) -> ValidationResult:
        return self.registry.update_model(model_id, updates)

    def remove_model(self, model_id: str) -> bool:
        return self.registry.remove_model(model_id)
