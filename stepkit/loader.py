"""Step plan loader and strict validation of the plan YAML."""

from pathlib import Path
from typing import Any, Dict, List, Optional
import yaml

from stepkit.exceptions import PlanValidationError, PropertyParseError, ValidationError
from stepkit.properties import normalize_properties
from stepkit.steps import MetadataTable, RunConfig, StepDescriptor, StepMetadata, StepPolicy, split_list


class PlanLoader:
    """Loads a step plan YAML file into a RunConfig."""

    SUPPORTED_VERSIONS = {"1.0"}

    TOP_LEVEL_FIELDS = {
        'version', 'name', 'properties', 'groups', 'policy', 'runner', 'timeout_sec',
        'metadata', 'pre_steps', 'post_steps', 'failure_steps', 'steps'
    }
    STEP_FIELDS = {
        'path', 'id', 'name', 'description', 'groups', 'properties',
        'execute_before', 'execute_after', 'pre_steps', 'post_steps'
    }
    HOOK_FIELDS = {'path', 'groups', 'properties'}
    METADATA_FIELDS = {'file', 'id', 'name', 'description'}
    POLICY_FIELDS = set(StepPolicy.__dataclass_fields__)

    def __init__(self, workspace: Path):
        """Initialize loader with workspace root."""
        self.workspace = Path(workspace).resolve()
        self.errors: List[ValidationError] = []
        self.runner: List[str] = []
        self.timeout_sec: Optional[int] = None

    def load(self, plan_path: Path) -> RunConfig:
        """Load and validate a plan file."""
        self.errors = []
        try:
            with open(plan_path, 'r') as f:
                plan = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            self._add_error(f"Failed to load plan: {e}")
            self._raise_validation_errors()

        if plan is None or not isinstance(plan, dict):
            self._add_error("Plan must be a YAML object/dictionary")
            self._raise_validation_errors()

        return self.load_dict(plan)

    def load_dict(self, plan: Dict[str, Any]) -> RunConfig:
        """Validate an already parsed plan and build the run configuration."""
        self.errors = []

        version = plan.get('version')
        if not version:
            self._add_error("'version' field is required")
        elif not isinstance(version, str):
            self._add_error(f"'version' field must be a string, got {type(version).__name__}")
        elif version not in self.SUPPORTED_VERSIONS:
            self._add_error(f"Unsupported version '{version}'. Supported: {sorted(self.SUPPORTED_VERSIONS)}")

        self._check_fields(plan, self.TOP_LEVEL_FIELDS, "plan")

        name = plan.get('name')
        if name is not None and not isinstance(name, str):
            self._add_error("'name' must be a string", "name")
            name = None

        properties = self._properties(plan.get('properties'), "properties")
        groups = self._string_list(plan.get('groups'), "groups")
        policy = self._policy(plan.get('policy', {}))
        metadata = self._metadata(plan.get('metadata', []))
        self.runner = self._runner(plan.get('runner'))
        self.timeout_sec = self._timeout(plan.get('timeout_sec'))

        pre_steps = self._hooks(plan.get('pre_steps', []), "pre_steps")
        post_steps = self._hooks(plan.get('post_steps', []), "post_steps")
        failure_steps = self._hooks(plan.get('failure_steps', []), "failure_steps")

        steps_data = plan.get('steps')
        steps: List[StepDescriptor] = []
        if not steps_data:
            self._add_error("'steps' field is required and must not be empty")
        elif not isinstance(steps_data, list):
            self._add_error("'steps' must be a list", "steps")
        else:
            for i, step in enumerate(steps_data):
                descriptor = self._step(step, f"steps[{i}]")
                if descriptor is not None:
                    steps.append(descriptor)

        if self.errors:
            self._raise_validation_errors()

        return RunConfig(
            steps=steps,
            metadata=metadata,
            groups=frozenset(groups),
            pre_steps=pre_steps,
            post_steps=post_steps,
            failure_steps=failure_steps,
            properties=properties,
            policy=policy,
            name=name,
        )

    def _step(self, step: Any, context: str) -> Optional[StepDescriptor]:
        """Validate a step definition."""
        if isinstance(step, str):
            step = {'path': step}
        if not isinstance(step, dict):
            self._add_error("Step must be a path or a dictionary", context)
            return None

        self._check_fields(step, self.STEP_FIELDS, context)
        path = self._path(step, context)

        overrides = {}
        for key in ('id', 'name', 'description'):
            value = step.get(key)
            if value is not None and not isinstance(value, str):
                self._add_error(f"'{key}' must be a string", context)
            elif value:
                overrides[key] = value

        groups = self._string_list(step.get('groups'), f"{context}.groups")
        execute_before = self._string_list(step.get('execute_before'), f"{context}.execute_before")
        execute_after = self._string_list(step.get('execute_after'), f"{context}.execute_after")
        properties = self._properties(step.get('properties'), f"{context}.properties")
        pre_steps = self._hooks(step.get('pre_steps', []), f"{context}.pre_steps")
        post_steps = self._hooks(step.get('post_steps', []), f"{context}.post_steps")

        if path is None:
            return None

        return StepDescriptor(
            path=path,
            groups=frozenset(groups),
            execute_before=tuple(execute_before),
            execute_after=tuple(execute_after),
            pre_steps=tuple(pre_steps),
            post_steps=tuple(post_steps),
            properties=properties,
            **overrides
        )

    def _hooks(self, hooks: Any, context: str) -> List[StepDescriptor]:
        """Validate a list of hooks (pre-, post- or failure steps)."""
        if hooks is None:
            return []
        if isinstance(hooks, str):
            hooks = split_list(hooks)
        if not isinstance(hooks, list):
            self._add_error("must be a list of hooks", context)
            return []

        result = []
        for i, hook in enumerate(hooks):
            hook_context = f"{context}[{i}]"
            if isinstance(hook, str):
                hook = {'path': hook}
            if not isinstance(hook, dict):
                self._add_error("Hook must be a path or a dictionary", hook_context)
                continue

            self._check_fields(hook, self.HOOK_FIELDS, hook_context)
            path = self._path(hook, hook_context)
            groups = self._string_list(hook.get('groups'), f"{hook_context}.groups")
            properties = self._properties(hook.get('properties'), f"{hook_context}.properties")
            if path is not None:
                result.append(StepDescriptor(path=path, groups=frozenset(groups), properties=properties))
        return result

    def _metadata(self, entries: Any) -> MetadataTable:
        """Validate the step metadata table."""
        if not isinstance(entries, list):
            self._add_error("'metadata' must be a list", "metadata")
            return MetadataTable()

        result = []
        for i, entry in enumerate(entries):
            context = f"metadata[{i}]"
            if not isinstance(entry, dict):
                self._add_error("Metadata entry must be a dictionary", context)
                continue

            self._check_fields(entry, self.METADATA_FIELDS, context)
            values = {}
            for key in self.METADATA_FIELDS:
                value = entry.get(key, '')
                if value is None:
                    value = ''
                if not isinstance(value, str):
                    self._add_error(f"'{key}' must be a string", context)
                    value = ''
                values[key] = value

            if not values['file']:
                self._add_error("missing required 'file' field", context)
                continue
            result.append(StepMetadata(**values))
        return MetadataTable(result)

    def _policy(self, policy: Any) -> StepPolicy:
        """Validate policy flags."""
        if not isinstance(policy, dict):
            self._add_error("'policy' must be a dictionary", "policy")
            return StepPolicy()

        self._check_fields(policy, self.POLICY_FIELDS, "policy")
        flags = {}
        for key, value in policy.items():
            if key not in self.POLICY_FIELDS:
                continue
            if not isinstance(value, bool):
                self._add_error(f"'{key}' must be a boolean", "policy")
                continue
            flags[key] = value
        return StepPolicy.from_dict(flags)

    def _runner(self, runner: Any) -> List[str]:
        if runner is None:
            return []
        if isinstance(runner, str):
            runner = [runner]
        if not isinstance(runner, list) or not all(isinstance(token, str) for token in runner):
            self._add_error("'runner' must be a list of strings", "runner")
            return []
        return runner

    def _timeout(self, timeout: Any) -> Optional[int]:
        if timeout is None:
            return None
        if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
            self._add_error("'timeout_sec' must be a positive integer", "timeout_sec")
            return None
        return timeout

    def _path(self, item: Dict[str, Any], context: str) -> Optional[str]:
        path = item.get('path')
        if not path:
            self._add_error("missing required 'path' field", context)
            return None
        if not isinstance(path, str):
            self._add_error(f"'path' must be a string, got {type(path).__name__}", context)
            return None
        return path

    def _string_list(self, value: Any, context: str) -> List[str]:
        """Accept a `;` separated string or a list of strings."""
        if value is None:
            return []
        if isinstance(value, str):
            return split_list(value)
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return split_list(value)
        self._add_error("must be a string or a list of strings", context)
        return []

    def _properties(self, value: Any, context: str) -> Dict[str, str]:
        try:
            return normalize_properties(value)
        except (PropertyParseError, TypeError) as e:
            self._add_error(str(e), context)
            return {}

    def _check_fields(self, data: Dict[str, Any], known_fields: set, context: str):
        """Strict unknown field rejection."""
        for key in data.keys():
            if key not in known_fields:
                self._add_error(f"Unknown field '{key}'", context)

    def _add_error(self, message: str, path: str = "", exit_code: int = 2):
        """Add validation error."""
        self.errors.append(ValidationError(message, path, exit_code))

    def _raise_validation_errors(self):
        """Raise PlanValidationError with accumulated errors."""
        raise PlanValidationError(self.errors)
