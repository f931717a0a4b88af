"""Pydantic models for workflow document validation.

Parses the Argo-compatible subset of the ``Workflow`` resource that the
engine understands into the immutable template union of
:mod:`localflow.models`.

Usage::

    from localflow.document import load_workflow, load_workflow_file

    workflow = load_workflow(yaml_or_json_text)
    workflow = load_workflow_file("examples/steps.yaml")

Example YAML::

    apiVersion: argoproj.io/v1alpha1
    kind: Workflow
    metadata:
      name: hello
    spec:
      entrypoint: main
      templates:
        - name: main
          steps:
            - - name: say
                template: echo
        - name: echo
          container:
            image: alpine:3.20
            command: [echo]
            args: ["hello world"]

Manifesto:
    Documents written for a cluster should run locally without edits.
    Fields the engine does not act on (``apiVersion``, ``resources``,
    ``retryStrategy`` ...) are accepted and ignored rather than rejected.

Tags:
    localflow, document, yaml, json, pydantic
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from localflow.errors import InvalidWorkflowError
from localflow.models import (
    ContainerTemplate,
    DAGTemplate,
    EnvVar,
    ScriptTemplate,
    StepRef,
    StepsTemplate,
    TaskRef,
    Template,
    Workflow,
)

_IGNORE = ConfigDict(extra="ignore", populate_by_name=True)


class EnvVarSpec(BaseModel):
    """A ``{name, value}`` environment entry."""

    model_config = _IGNORE

    name: str = Field(..., min_length=1)
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> str:
        """YAML turns ``value: 1`` into an int; env values are strings."""
        if v is None:
            return ""
        if isinstance(v, bool):
            return "true" if v else "false"
        return str(v)


class ContainerSpec(BaseModel):
    """``container:`` body of a template."""

    model_config = _IGNORE

    image: str = Field(..., min_length=1)
    command: list[str] = Field(default_factory=list)
    args: list[str] = Field(default_factory=list)
    working_dir: str | None = Field(default=None, alias="workingDir")
    env: list[EnvVarSpec] = Field(default_factory=list)


class ScriptSpec(BaseModel):
    """``script:`` body of a template."""

    model_config = _IGNORE

    image: str = Field(..., min_length=1)
    command: list[str] = Field(default_factory=lambda: ["sh"])
    source: str
    working_dir: str | None = Field(default=None, alias="workingDir")
    env: list[EnvVarSpec] = Field(default_factory=list)


class StepSpec(BaseModel):
    """One entry of a step group."""

    model_config = _IGNORE

    name: str = Field(..., min_length=1)
    template: str = Field(..., min_length=1)


class TaskSpec(BaseModel):
    """One task of a ``dag:`` body."""

    model_config = _IGNORE

    name: str = Field(..., min_length=1)
    template: str = Field(..., min_length=1)
    dependencies: list[str] = Field(default_factory=list)


class DAGSpec(BaseModel):
    """``dag:`` body of a template."""

    model_config = _IGNORE

    tasks: list[TaskSpec] = Field(default_factory=list)

    @field_validator("tasks")
    @classmethod
    def validate_unique_names(cls, v: list[TaskSpec]) -> list[TaskSpec]:
        names = [t.name for t in v]
        if len(names) != len(set(names)):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate task names: {duplicates}")
        return v


class TemplateSpec(BaseModel):
    """A named template carrying exactly one of the four bodies."""

    model_config = _IGNORE

    name: str = Field(..., min_length=1)
    container: ContainerSpec | None = None
    script: ScriptSpec | None = None
    steps: list[list[StepSpec]] | None = None
    dag: DAGSpec | None = None

    @field_validator("steps")
    @classmethod
    def validate_unique_step_names(cls, v: list[list[StepSpec]] | None) -> list[list[StepSpec]] | None:
        for index, group in enumerate(v or []):
            names = [s.name for s in group]
            if len(names) != len(set(names)):
                duplicates = sorted({n for n in names if names.count(n) > 1})
                raise ValueError(f"Duplicate step names in group {index}: {duplicates}")
        return v

    @model_validator(mode="after")
    def validate_single_kind(self) -> TemplateSpec:
        kinds = [
            k for k in ("container", "script", "steps", "dag")
            if getattr(self, k) is not None
        ]
        if len(kinds) != 1:
            found = ", ".join(kinds) if kinds else "none"
            raise ValueError(
                f"template '{self.name}' must define exactly one of "
                f"container, script, steps, dag (found: {found})"
            )
        return self

    def to_template(self) -> Template:
        """Convert to the immutable template dataclass."""
        if self.container is not None:
            c = self.container
            return ContainerTemplate(
                name=self.name,
                image=c.image,
                command=tuple(c.command),
                args=tuple(c.args),
                working_dir=c.working_dir,
                env=tuple(EnvVar(e.name, e.value) for e in c.env),
            )
        if self.script is not None:
            s = self.script
            return ScriptTemplate(
                name=self.name,
                image=s.image,
                source=s.source,
                command=tuple(s.command),
                working_dir=s.working_dir,
                env=tuple(EnvVar(e.name, e.value) for e in s.env),
            )
        if self.steps is not None:
            return StepsTemplate(
                name=self.name,
                groups=tuple(
                    tuple(StepRef(s.name, s.template) for s in group)
                    for group in self.steps
                ),
            )
        assert self.dag is not None
        return DAGTemplate(
            name=self.name,
            tasks=tuple(
                TaskRef(t.name, t.template, tuple(t.dependencies))
                for t in self.dag.tasks
            ),
        )


class MetadataSpec(BaseModel):
    """``metadata:`` section."""

    model_config = _IGNORE

    name: str = ""
    labels: dict[str, str] = Field(default_factory=dict)


class WorkflowSpecSection(BaseModel):
    """``spec:`` section."""

    model_config = _IGNORE

    # Left empty-able so submission can report a missing entrypoint itself
    entrypoint: str = ""
    templates: list[TemplateSpec] = Field(default_factory=list)

    @field_validator("templates")
    @classmethod
    def validate_unique_names(cls, v: list[TemplateSpec]) -> list[TemplateSpec]:
        names = [t.name for t in v]
        if len(names) != len(set(names)):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate template names: {duplicates}")
        return v


class WorkflowDocument(BaseModel):
    """Root model of a workflow document.

    The run name comes from ``metadata.name``; a top-level ``name`` is
    accepted as well.
    """

    model_config = _IGNORE

    api_version: str | None = Field(default=None, alias="apiVersion")
    kind: Literal["Workflow"] = "Workflow"
    name: str = ""
    metadata: MetadataSpec = Field(default_factory=MetadataSpec)
    spec: WorkflowSpecSection = Field(default_factory=WorkflowSpecSection)

    @model_validator(mode="after")
    def validate_name(self) -> WorkflowDocument:
        if not (self.metadata.name or self.name):
            raise ValueError("Workflow name is required (metadata.name)")
        return self

    @property
    def workflow_name(self) -> str:
        return self.metadata.name or self.name

    def to_workflow(self) -> Workflow:
        """Convert validated document to a :class:`Workflow`."""
        return Workflow(
            name=self.workflow_name,
            entrypoint=self.spec.entrypoint,
            templates=tuple(t.to_template() for t in self.spec.templates),
            labels=dict(self.metadata.labels),
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _format_validation_error(exc: ValidationError) -> tuple[str, str | None]:
    first = exc.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    msg = first.get("msg", str(exc)).removeprefix("Value error, ")
    if loc:
        return f"{loc}: {msg}", loc
    return msg, None


def parse_document(data: Any) -> Workflow:
    """Validate already-decoded document data.

    Raises:
        InvalidWorkflowError: If the data is not a valid workflow.
    """
    if not isinstance(data, dict):
        raise InvalidWorkflowError("Failed to parse workflow: document must be a mapping")
    try:
        document = WorkflowDocument.model_validate(data)
    except ValidationError as exc:
        message, loc = _format_validation_error(exc)
        raise InvalidWorkflowError(f"Invalid workflow: {message}", field=loc) from exc
    return document.to_workflow()


def load_workflow(text: str | bytes) -> Workflow:
    """Parse a JSON or YAML workflow document.

    JSON is tried first; anything that is not JSON is parsed as YAML.

    Raises:
        InvalidWorkflowError: If the text parses as neither, or the result is
            not a valid workflow.
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except ValueError:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise InvalidWorkflowError(f"Failed to parse workflow: {exc}") from exc
    return parse_document(data)


def load_workflow_file(path: str | Path) -> Workflow:
    """Load and validate a workflow document from a file.

    Raises:
        InvalidWorkflowError: If the file cannot be read or is invalid.
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidWorkflowError(f"Cannot read workflow file '{path}': {exc}") from exc
    return load_workflow(content)
