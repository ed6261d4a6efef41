"""Tests for agents.specialist - LLM calls are mocked."""

import json
from unittest.mock import patch

import pytest

from agents.specialist import SpecialistAgent
from core.errors import ExtractionError, LlmError, ParseError, PreconditionError

REQS = ["Build a todo app with a REST API and a database"]

TREE = {
    "name": "project-root",
    "description": "Root",
    "purpose": "Holds everything",
    "files": [{"name": "package.json", "description": "deps", "purpose": "npm"}],
    "subfolders": [],
}


def _response(**overrides):
    data = {
        "role": "Backend Developer",
        "expertise": "APIs",
        "visionText": "Use Express with a service layer.",
        "projectStructure": {"rootFolder": TREE},
    }
    data.update(overrides)
    return "Here you go:\n```json\n" + json.dumps(data) + "\n```"


def test_generate_vision_parses_response():
    with patch("agents.specialist.call_llm", return_value=_response()) as llm:
        vision = SpecialistAgent().generate_vision(REQS, "Backend Developer", 0, 3)

    assert vision.role == "Backend Developer"
    assert vision.expertise == "APIs"
    assert vision.vision_text == "Use Express with a service layer."
    assert vision.proposed_tree.name == "project-root"
    assert vision.proposed_tree.file_paths() == ["package.json"]

    system_prompt, user_message = llm.call_args[0]
    assert "expert Backend Developer" in system_prompt
    assert "specialist 1 of 3" in system_prompt
    assert REQS[0] in user_message
    assert llm.call_count == 1


def test_role_comes_from_caller_not_response():
    with patch("agents.specialist.call_llm", return_value=_response(role="Someone Else")):
        vision = SpecialistAgent().generate_vision(REQS, "Database Architect", 2, 3)
    assert vision.role == "Database Architect"


def test_top_level_root_folder_accepted():
    text = json.dumps({"visionText": "v", "rootFolder": TREE})
    with patch("agents.specialist.call_llm", return_value=text):
        vision = SpecialistAgent().generate_vision(REQS, "Frontend Developer", 1, 3)
    assert vision.proposed_tree.name == "project-root"


def test_missing_expertise_uses_role_default():
    text = json.dumps({"visionText": "v", "projectStructure": {"rootFolder": TREE}})
    with patch("agents.specialist.call_llm", return_value=text):
        vision = SpecialistAgent().generate_vision(REQS, "QA Engineer", 0, 1)
    assert "test" in vision.expertise


def test_missing_tree_is_hard_failure():
    text = json.dumps({"visionText": "Only prose, no structure."})
    with patch("agents.specialist.call_llm", return_value=text):
        with pytest.raises(ParseError, match="project structure"):
            SpecialistAgent().generate_vision(REQS, "Backend Developer", 0, 1)


def test_malformed_tree_is_hard_failure():
    bad = {"name": "root", "files": []}  # no description/purpose
    with patch("agents.specialist.call_llm", return_value=_response(projectStructure={"rootFolder": bad})):
        with pytest.raises(ParseError):
            SpecialistAgent().generate_vision(REQS, "Backend Developer", 0, 1)


def test_missing_vision_text_is_hard_failure():
    text = json.dumps({"projectStructure": {"rootFolder": TREE}})
    with patch("agents.specialist.call_llm", return_value=text):
        with pytest.raises(ParseError, match="visionText"):
            SpecialistAgent().generate_vision(REQS, "Backend Developer", 0, 1)


def test_llm_error_propagates_unchanged():
    err = LlmError("Claude API error: 529 overloaded", status=529)
    with patch("agents.specialist.call_llm", side_effect=err):
        with pytest.raises(LlmError) as exc:
            SpecialistAgent().generate_vision(REQS, "Backend Developer", 0, 1)
    assert exc.value is err


def test_extraction_error_propagates():
    with patch("agents.specialist.call_llm", return_value="Sorry, I cannot help."):
        with pytest.raises(ExtractionError):
            SpecialistAgent().generate_vision(REQS, "Backend Developer", 0, 1)


def test_empty_requirements_rejected():
    with patch("agents.specialist.call_llm") as llm:
        with pytest.raises(PreconditionError):
            SpecialistAgent().generate_vision([], "Backend Developer", 0, 1)
    llm.assert_not_called()


@pytest.mark.parametrize("role", ["Wizard", "Chief Technology Officer"])
def test_unknown_or_integration_role_rejected(role):
    with pytest.raises(ValueError):
        SpecialistAgent().generate_vision(REQS, role, 0, 1)
