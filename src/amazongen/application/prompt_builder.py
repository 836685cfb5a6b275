"""Composition of the final instruction sent to a generation backend.

The output is a pure function of its inputs so two tasks with the same
definition, specification and refinement always carry byte-identical prompts.
"""

from __future__ import annotations

from src.amazongen.domain.models.mask import SceneDefinition
from src.amazongen.domain.models.product_spec import ProductSpecification

ROLE_HEADER = "[System Instruction / Role Definition]"
SPECIFICATIONS_HEADER = "[Target Specifications]"
REFINEMENT_HEADER = "[User Refinement Instruction]"
EXECUTION_HEADER = "[Execution Command]"
EXECUTION_COMMAND = (
    "Based on the visual analysis of the attached input image (which might be a "
    "previous generation) and the specifications above, generate the final scene "
    "image. Do not output conversational text. Output ONLY the image."
)

_SPEC_LABELS: tuple[tuple[str, str], ...] = (
    ("size", "Product Size"),
    ("scenario", "Application Scenario"),
    ("caliber", "Product Caliber/Spec"),
)


def _clean(value: str | None) -> str:
    return value.strip() if value else ""


def build_prompt(
    definition: SceneDefinition,
    spec: ProductSpecification | None = None,
    refine_text: str | None = None,
) -> str:
    """Return the prompt for one task.

    Blank specification fields produce no line at all. A non-blank
    ``refine_text`` is added, trimmed, in its own segment before the
    execution command.
    """
    spec = spec or ProductSpecification()
    sections = [f"{ROLE_HEADER}\n{definition.prompt}"]

    spec_lines = [SPECIFICATIONS_HEADER]
    for field, label in _SPEC_LABELS:
        value = _clean(getattr(spec, field))
        if value:
            spec_lines.append(f"- {label}: {value}")
    sections.append("\n".join(spec_lines))

    refinement = _clean(refine_text)
    if refinement:
        sections.append(f"{REFINEMENT_HEADER}\n{refinement}")

    sections.append(f"{EXECUTION_HEADER}\n{EXECUTION_COMMAND}")
    return "\n\n".join(sections)
