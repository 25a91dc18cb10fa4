"""README generation for the module

Documentation is driven by a YAML config (`.docs.yml` at the repository root). Its `content` is a markdown template
that may contain the following directives:

- `{{ include "relative/path" }}` inlines a file, typically one of the examples
- `{{ .Requirements }}`, `{{ .Resources }}`, `{{ .Inputs }}` and `{{ .Outputs }}` render markdown tables generated
  from the package itself. Inputs come from the BackupParameters field descriptions.

In `inject` mode, the rendered content replaces whatever sits between the BEGIN_DOCS and END_DOCS markers of the
output file, leaving hand written text around it untouched.
"""
# Standard
from enum import Enum
import json
import logging
from pathlib import Path
import re
import typing
from typing import Any, Dict, List, Union
# Installed
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.fields import FieldInfo
import yaml
# Local
from cdk_aws_backup.constructs.constants import OUTPUTS, REQUIREMENTS, RESOURCES
from cdk_aws_backup.errors import BackupConfigurationError
from cdk_aws_backup.parameters import BackupParameters

logger = logging.getLogger(__name__)

BEGIN_MARKER = "<!-- BEGIN_DOCS -->"
END_MARKER = "<!-- END_DOCS -->"
DEFAULT_OUTPUT_TEMPLATE = f"{BEGIN_MARKER}\n{{{{ .Content }}}}\n{END_MARKER}"

INCLUDE_DIRECTIVE = re.compile(r'\{\{\s*include\s+"(?P<path>[^"]+)"\s*\}\}')
SECTION_DIRECTIVE = re.compile(r"\{\{\s*\.(?P<section>\w+)\s*\}\}")


class DocsOutput(BaseModel):
    model_config = ConfigDict(extra="forbid")
    file: str = "README.md"
    mode: typing.Literal["inject", "replace"] = "inject"
    template: str = DEFAULT_OUTPUT_TEMPLATE


class DocsSort(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = True
    by: typing.Literal["required", "name"] = "required"


class DocsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    content: str = Field(description="Markdown template of the generated documentation")
    output: DocsOutput = Field(default_factory=DocsOutput)
    sort: DocsSort = Field(default_factory=DocsSort)


def load_docs_config(path: Union[str, Path]) -> DocsConfig:
    """Read a docs config YAML file"""
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text())
        return DocsConfig.model_validate(raw or {})
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise BackupConfigurationError(f"Invalid docs config {path}", original_error=e) from e


def _escape(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _type_name(annotation: Any) -> str:
    """Terraform-like type name of a pydantic field annotation"""
    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    if origin is Union:
        types = [_type_name(arg) for arg in args if arg is not type(None)]
        return " | ".join(types)
    if origin is list:
        return f"list({_type_name(args[0])})"
    if origin is dict:
        return f"map({_type_name(args[1])})"
    if annotation is Any:
        return "any"
    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return "string"
        if issubclass(annotation, BaseModel):
            return "object"
        return {str: "string", int: "number", bool: "bool"}.get(annotation, annotation.__name__)
    return str(annotation)


def _default(field: FieldInfo) -> str:
    if field.is_required():
        return "n/a"
    value = field.get_default(call_default_factory=True)
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [item.value if isinstance(item, Enum) else item for item in value]
    return f"`{json.dumps(value, default=str)}`"


def _sorted_fields(sort: DocsSort) -> List[tuple]:
    fields = list(BackupParameters.model_fields.items())
    if not sort.enabled:
        return fields
    if sort.by == "required":
        return sorted(fields, key=lambda item: (not item[1].is_required(), item[0]))
    return sorted(fields, key=lambda item: item[0])


def render_inputs(sort: DocsSort) -> str:
    rows = [
        "## Inputs",
        "",
        "| Name | Description | Type | Default | Required |",
        "|------|-------------|------|---------|:--------:|",
    ]
    for name, field in _sorted_fields(sort):
        rows.append(
            f"| <a name=\"input_{name}\"></a> [{name}](#input_{name}) | {_escape(field.description or '')} | "
            f"`{_type_name(field.annotation)}` | {_default(field)} | {'yes' if field.is_required() else 'no'} |"
        )
    return "\n".join(rows)


def render_outputs() -> str:
    rows = ["## Outputs", "", "| Name | Description |", "|------|-------------|"]
    for name, description in OUTPUTS.items():
        rows.append(f"| <a name=\"output_{name}\"></a> [{name}](#output_{name}) | {_escape(description)} |")
    return "\n".join(rows)


def render_resources() -> str:
    rows = ["## Resources", "", "| Type | Notes |", "|------|-------|"]
    for resource_type, notes in RESOURCES:
        rows.append(f"| `{resource_type}` | {_escape(notes)} |")
    return "\n".join(rows)


def render_requirements() -> str:
    rows = ["## Requirements", "", "| Name | Version |", "|------|---------|"]
    for name, version in REQUIREMENTS:
        rows.append(f"| {name} | {version} |")
    return "\n".join(rows)


def generate(config: DocsConfig, root: Union[str, Path]) -> str:
    """Render the config's content template

    Parameters
    ----------
    config : DocsConfig
        Docs configuration.
    root : Union[str, Path]
        Directory that `include` paths are relative to, usually the repository root.

    Returns
    -------
    : str
        Rendered markdown
    """
    root = Path(root)
    sections = {
        "Requirements": render_requirements,
        "Resources": render_resources,
        "Inputs": lambda: render_inputs(config.sort),
        "Outputs": render_outputs,
    }

    def _include(match: re.Match) -> str:
        path = root / match.group("path")
        try:
            return path.read_text().rstrip("\n")
        except OSError as e:
            raise BackupConfigurationError(f"Unable to include {path}", original_error=e) from e

    def _section(match: re.Match) -> str:
        section = match.group("section")
        if section not in sections:
            raise BackupConfigurationError(f"Unknown docs section {section!r}", value=section)
        return sections[section]()

    content = INCLUDE_DIRECTIVE.sub(_include, config.content)
    return SECTION_DIRECTIVE.sub(_section, content)


def _inject(existing: str, block: str) -> str:
    """Replace the marked block of existing text, or append it when there are no markers"""
    start = existing.find(BEGIN_MARKER)
    end = existing.find(END_MARKER, start)
    if start == -1 or end == -1:
        logger.info("No docs markers found, appending generated docs")
        return existing.rstrip("\n") + "\n\n" + block + "\n" if existing else block + "\n"
    return existing[:start] + block + existing[end + len(END_MARKER):]


def write(config: DocsConfig, root: Union[str, Path], check: bool = False) -> bool:
    """Render documentation into the configured output file

    Parameters
    ----------
    config : DocsConfig
        Docs configuration.
    root : Union[str, Path]
        Repository root. The output file and includes are relative to it.
    check : bool
        Only report whether the file is stale, never write it. Default False.

    Returns
    -------
    : bool
        True if the output file changed (or, with `check`, would change).
    """
    root = Path(root)
    output_path = root / config.output.file
    if config.output.mode == "inject" and (BEGIN_MARKER not in config.output.template
                                           or END_MARKER not in config.output.template):
        raise BackupConfigurationError(
            f"An inject mode output template must contain {BEGIN_MARKER} and {END_MARKER}", field="output.template")

    block = config.output.template.replace("{{ .Content }}", generate(config, root))
    existing = output_path.read_text() if output_path.exists() else ""
    updated = _inject(existing, block) if config.output.mode == "inject" else block + "\n"

    if updated == existing:
        logger.info(f"{output_path} is up to date")
        return False
    if check:
        logger.warning(f"{output_path} is out of date")
        return True
    output_path.write_text(updated)
    logger.info(f"Wrote documentation to {output_path}")
    return True
