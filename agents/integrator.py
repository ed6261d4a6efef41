"""Integrator (CTO) agent: merges specialist visions into one plan + dependency graph."""

import json
import logging

from config.defaults import load_settings
from core.errors import ParseError, PreconditionError
from core.graph import order_dependency_tree, validate_completeness
from core.state import DependencyFile, FolderNode, IntegrationResult, file_key
from utils.json_extract import extract_json
from utils.llm import call_llm
from utils.template_engine import render_prompt

logger = logging.getLogger(__name__)


def _format_visions(visions):
    blocks = []
    for i, sv in enumerate(visions, 1):
        blocks.append(
            f"Specialist {i}: {sv.role}\n"
            f"Expertise: {sv.expertise}\n"
            f"Vision:\n{sv.vision_text}\n\n"
            f"Project Structure:\n{json.dumps(sv.proposed_tree.to_dict(), indent=2)}\n"
        )
    return "\n\n--------------\n\n".join(blocks)


def _str_list(value, what):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ParseError(f"{what} must be a list of strings")
    return value


def _parse_dependency_file(entry, root_name, known=()):
    if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
        raise ParseError(f"Dependency tree entry is missing a name: {entry!r}")
    name = entry["name"]
    path = file_key(entry.get("path") or "", name, root=root_name, known=known)

    order = entry.get("implementationOrder", 1)
    try:
        order = int(order)
    except (TypeError, ValueError):
        raise ParseError(f"Invalid implementationOrder for {path}: {order!r}") from None

    return DependencyFile(
        name=name,
        path=path,
        description=entry.get("description") or "",
        purpose=entry.get("purpose") or "",
        type=entry.get("type") or "",
        dependencies=[file_key(d, root=root_name, known=known)
                      for d in _str_list(entry.get("dependencies"), f"dependencies of {path}")],
        dependents=[file_key(d, root=root_name, known=known)
                    for d in _str_list(entry.get("dependents"), f"dependents of {path}")],
        implementation_order=max(order, 1),
    )


def parse_integration(data, raw_text=""):
    """Turn the decoded CTO response into a validated, ordered IntegrationResult."""
    if not isinstance(data, dict):
        raise ParseError("Integration response is not a JSON object", original=raw_text)

    vision = data.get("integratedVision")
    if not isinstance(vision, str) or not vision.strip():
        raise ParseError("Integration response is missing integratedVision", original=raw_text)
    if not isinstance(data.get("rootFolder"), dict):
        raise ParseError("Integration response is missing rootFolder", original=raw_text)
    root = FolderNode.from_dict(data["rootFolder"])

    tree = data.get("dependencyTree")
    entries = tree.get("files") if isinstance(tree, dict) else tree
    if not isinstance(entries, list):
        raise ParseError("Integration response is missing dependencyTree.files", original=raw_text)

    known = set(root.file_paths())
    files = [_parse_dependency_file(e, root.name, known) for e in entries]
    validate_completeness(root, files)

    ordered, notes = order_dependency_tree(files)

    resolution_notes = list(_str_list(data.get("resolutionNotes"), "resolutionNotes")) + notes
    return IntegrationResult(
        integrated_vision=vision,
        resolution_notes=resolution_notes,
        root_folder=root,
        dependency_tree=ordered,
    )


class IntegratorAgent:
    """Chief Technology Officer: reconciles all specialist outputs."""

    name = "integrator"

    def __init__(self, settings=None):
        self.settings = settings or load_settings()

    def integrate(self, requirements, visions) -> IntegrationResult:
        if not visions:
            raise PreconditionError("No specialist visions available to integrate",
                                    missing=["visions"])

        logger.info("Integrating %d specialist visions", len(visions))
        prompt = render_prompt("integrator", {"count": len(visions)})
        user_message = (
            "Requirements:\n" + "\n".join(requirements)
            + "\n\nSpecialist Visions:\n" + _format_visions(visions)
        )

        text = call_llm(
            prompt, user_message,
            temperature=self.settings["integration_temperature"],
            settings=self.settings,
        )
        result = parse_integration(extract_json(text), raw_text=text)
        logger.info("Integrated plan has %d files, %d resolution notes",
                    len(result.dependency_tree), len(result.resolution_notes))
        return result
