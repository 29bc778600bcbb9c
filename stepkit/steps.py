"""Step descriptors, step metadata and run configuration."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from .properties import normalize_properties

# Steps are selected when the requested groups contain this tag
ALL_GROUPS = 'all'

_PATH_SEPARATORS = re.compile(r'[\\/]')


def split_list(value: Union[str, Iterable[str], None]) -> List[str]:
    """Split a `;` separated string (or iterable of strings) into trimmed, non-empty items."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(';')
    else:
        items = list(value)
    return [str(item).strip() for item in items if str(item).strip()]


def normalize_groups(value: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """Lower-case and trim group tags, dropping empty ones."""
    return frozenset(item.lower() for item in split_list(value))


def file_name(path: str) -> str:
    """Return the final component of a path written with either separator."""
    return _PATH_SEPARATORS.split(path.strip())[-1]


def matches_groups(requested: Iterable[str], groups: Iterable[str]) -> bool:
    """
    Decide whether a step tagged with `groups` takes part in a run.

    An empty request, or one containing 'all', selects every step. Otherwise
    the step must share at least one tag with the request.
    """
    requested = normalize_groups(requested)
    if not requested or ALL_GROUPS in requested:
        return True
    return bool(requested & normalize_groups(groups))


@dataclass(frozen=True)
class StepDescriptor:
    """
    One planned unit of work.

    Attributes:
        path: Path of the script to invoke
        groups: Tags used to include or exclude the step from a run
        execute_before: Identities of steps that must run after this one
        execute_after: Identities of steps that must run before this one
        pre_steps: Hooks run before this step only
        post_steps: Hooks run after this step only
        properties: Properties passed to the invocation
        id, name, description: Explicit overrides for the metadata table
    """
    path: str
    groups: FrozenSet[str] = frozenset()
    execute_before: Tuple[str, ...] = ()
    execute_after: Tuple[str, ...] = ()
    pre_steps: Tuple['StepDescriptor', ...] = ()
    post_steps: Tuple['StepDescriptor', ...] = ()
    properties: Dict[str, str] = field(default_factory=dict, hash=False)
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'groups', normalize_groups(self.groups))
        object.__setattr__(
            self, 'execute_before', tuple(ref.lower() for ref in split_list(self.execute_before))
        )
        object.__setattr__(
            self, 'execute_after', tuple(ref.lower() for ref in split_list(self.execute_after))
        )
        object.__setattr__(self, 'pre_steps', tuple(self.pre_steps))
        object.__setattr__(self, 'post_steps', tuple(self.post_steps))
        object.__setattr__(self, 'properties', normalize_properties(self.properties))

    @property
    def file_name(self) -> str:
        return file_name(self.path)

    @property
    def identity(self) -> str:
        """Case-insensitive key used for ordering references and duplicate checks."""
        return (self.id or self.file_name).strip().lower()

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class StepMetadata:
    """Display information for the step whose script has file name `file`."""
    file: str
    id: str = ''
    name: str = ''
    description: str = ''


class MetadataTable:
    """Looks up step metadata by script file name, ignoring case and directory."""

    def __init__(self, entries: Optional[Iterable[StepMetadata]] = None):
        self.entries: List[StepMetadata] = list(entries or [])

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def lookup(self, path: str) -> Optional[StepMetadata]:
        """Return the first entry matching the file name of `path`."""
        name = file_name(path).lower()
        for entry in self.entries:
            if file_name(entry.file).lower() == name:
                return entry
        return None

    def describe(self, step: StepDescriptor, is_first: bool, is_last: bool) -> Dict[str, str]:
        """
        Build the metadata property bag handed to the hooks of `step`.

        Explicit overrides on the step win over the table, and the script file
        name is the fallback for the id and the name.
        """
        entry = self.lookup(step.path)
        step_file = step.file_name

        description = step.description or (entry.description if entry else '') or ''
        step_id = step.id or (entry.id if entry else '') or step_file
        name = step.name or (entry.name if entry else '') or step_file

        return {
            'StepDescription': description,
            'StepId': step_id,
            'StepName': name,
            'StepPath': step.path,
            'IsFirstStep': 'true' if is_first else 'false',
            'IsLastStep': 'true' if is_last else 'false',
        }


@dataclass
class StepPolicy:
    """Failure handling switches for a run."""
    stop_on_first_failure: bool = True
    stop_on_pre_step_failure: bool = True
    stop_on_post_step_failure: bool = True
    fail_on_pre_step_failure: bool = True
    fail_on_post_step_failure: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StepPolicy':
        return cls(**{k: bool(v) for k, v in data.items()})


@dataclass
class RunConfig:
    """Everything the orchestrator needs for one run."""
    steps: List[StepDescriptor] = field(default_factory=list)
    metadata: MetadataTable = field(default_factory=MetadataTable)
    groups: FrozenSet[str] = frozenset()
    pre_steps: List[StepDescriptor] = field(default_factory=list)
    post_steps: List[StepDescriptor] = field(default_factory=list)
    failure_steps: List[StepDescriptor] = field(default_factory=list)
    properties: Dict[str, str] = field(default_factory=dict)
    policy: StepPolicy = field(default_factory=StepPolicy)
    name: Optional[str] = None

    def __post_init__(self):
        self.groups = normalize_groups(self.groups)
        self.properties = normalize_properties(self.properties)
        if not isinstance(self.metadata, MetadataTable):
            self.metadata = MetadataTable(self.metadata)
