"""
Edge metadata between two nodes of a DAG.

An edge always means "target depends on source". It may additionally carry
an ``input_mapping`` that selects and renames the fields of the source's
output the target receives::

    EdgeSpec(
        source="search",
        target="summarize",
        input_mapping={"documents": "results"},  # target_key: source_key
    )

Without a mapping the target receives the whole source output, flattened
into its inputs and also nested under the source node's name.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field


class EdgeSpec(BaseModel):
    """Specification for an edge between two nodes."""

    source: str = Field(description="Source node name")
    target: str = Field(description="Target node name")

    input_mapping: dict[str, str] = Field(
        default_factory=dict,
        description="Map source outputs to target inputs: {target_key: source_key}",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form annotations (provider hints, tags, plan step metadata)",
    )

    model_config = {"extra": "allow"}

    @property
    def has_mapping(self) -> bool:
        return bool(self.input_mapping)

    def map_inputs(self, source_output: Any) -> dict[str, Any]:
        """
        Map a source node's output to the target's inputs.

        Args:
            source_output: Output recorded for the source node

        Returns:
            Input fragment for the target node
        """
        if not self.input_mapping:
            result = dict(source_output) if isinstance(source_output, Mapping) else {}
            result[self.source] = source_output
            return result

        result = {}
        if isinstance(source_output, Mapping):
            for target_key, source_key in self.input_mapping.items():
                if source_key in source_output:
                    result[target_key] = source_output[source_key]
        return result
