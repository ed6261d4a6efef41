"""Specialist agent: one role's vision and proposed project tree."""

import logging

from config.defaults import load_settings
from core.errors import ParseError, PreconditionError
from core.state import FolderNode, SpecialistVision
from manager.role_selector import INTEGRATION_ROLE, ROLE_EXPERTISE
from utils.json_extract import extract_json
from utils.llm import call_llm
from utils.template_engine import render_prompt

logger = logging.getLogger(__name__)


def _find_tree(data):
    structure = data.get("projectStructure")
    if isinstance(structure, dict):
        if isinstance(structure.get("rootFolder"), dict):
            return structure["rootFolder"]
        if "name" in structure:
            return structure
    if isinstance(data.get("rootFolder"), dict):
        return data["rootFolder"]
    return None


class SpecialistAgent:
    """Produces a SpecialistVision for a single role."""

    name = "specialist"

    def __init__(self, settings=None):
        self.settings = settings or load_settings()

    def generate_vision(self, requirements, role, role_index, total_roles) -> SpecialistVision:
        if not requirements:
            raise PreconditionError("Requirements are required to generate a vision",
                                    missing=["requirements"])
        if role not in ROLE_EXPERTISE or role == INTEGRATION_ROLE:
            raise ValueError(f"Unknown specialist role: {role}")

        logger.info("Generating vision for specialist %d/%d: %s",
                    role_index + 1, total_roles, role)

        prompt = render_prompt("specialist", {
            "role": role,
            "expertise": ROLE_EXPERTISE[role],
            "position": role_index + 1,
            "total": total_roles,
        })
        user_message = "Requirements:\n" + "\n".join(requirements)

        text = call_llm(
            prompt, user_message,
            temperature=self.settings["specialist_temperature"],
            settings=self.settings,
        )
        data = extract_json(text)
        if not isinstance(data, dict):
            raise ParseError(f"{role} response is not a JSON object", original=text)

        vision_text = data.get("visionText")
        if not isinstance(vision_text, str) or not vision_text.strip():
            raise ParseError(f"{role} response is missing visionText", original=text)

        tree = _find_tree(data)
        if tree is None:
            raise ParseError(f"{role} response is missing its project structure", original=text)

        expertise = data.get("expertise")
        return SpecialistVision(
            role=role,
            expertise=expertise if isinstance(expertise, str) and expertise else ROLE_EXPERTISE[role],
            vision_text=vision_text,
            proposed_tree=FolderNode.from_dict(tree),
        )
