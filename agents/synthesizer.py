"""Synthesizer agent - produces one code artifact per file, in dependency order."""

import json
import logging
import os
import re

from config.defaults import load_settings
from core.errors import ArchitectError, ParseError, PipelineCancelled, SynthesisError
from core.graph import synthesis_sort_key
from core.state import FileImplementation
from utils.json_extract import extract_json
from utils.llm import call_llm
from utils.template_engine import render_prompt

logger = logging.getLogger(__name__)

_EXT_LANGUAGES = {
    ".js": "javascript", ".jsx": "javascript", ".mjs": "javascript",
    ".ts": "typescript", ".tsx": "typescript", ".py": "python",
    ".rb": "ruby", ".php": "php", ".java": "java", ".kt": "kotlin",
    ".swift": "swift", ".go": "go", ".rs": "rust", ".c": "c",
    ".cpp": "cpp", ".cs": "csharp", ".html": "html", ".css": "css",
    ".scss": "scss", ".less": "less", ".json": "json", ".yaml": "yaml",
    ".yml": "yaml", ".md": "markdown", ".sql": "sql", ".sh": "bash",
    ".ps1": "powershell", ".ini": "ini", ".cfg": "ini", ".toml": "toml",
    ".xml": "xml", ".svg": "svg", ".vue": "vue", ".dart": "dart",
    ".ex": "elixir", ".exs": "elixir", ".graphql": "graphql",
    ".prisma": "prisma", ".sol": "solidity", ".env": "plaintext",
}

_NAME_LANGUAGES = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
    ".gitignore": "plaintext",
    ".dockerignore": "plaintext",
    ".env": "plaintext",
}

# (path words, instructions); first match wins
_FILE_TYPE_INSTRUCTIONS = [
    ({"test", "tests", "spec", "specs"}, """
This is a test file. Your implementation should include:
- Test suite organization with setup and teardown
- Test cases for all functionality of the file under test
- Mocks and stubs for external dependencies"""),
    ({"component", "components", "ui", "page", "pages", "view", "views"}, """
This is a UI component file. Your implementation should include:
- All necessary imports and prop/type definitions
- State management and event handlers
- Complete rendering with loading and error states"""),
    ({"model", "models", "schema", "schemas", "entity", "entities"}, """
This is a data model file. Your implementation should include:
- Complete type/class definitions with all properties
- Field validation rules and relationships
- Serialization and persistence integration"""),
    ({"controller", "controllers", "handler", "handlers", "route", "routes", "api"}, """
This is a controller/route handler file. Your implementation should include:
- Route definitions with HTTP methods
- Request validation, authorization checks and error responses
- Response formatting"""),
    ({"service", "services", "provider", "providers", "repository", "repositories"}, """
This is a service file. Your implementation should include:
- Public methods with complete implementations
- External integrations with error handling
- Logging where failures can occur"""),
    ({"config", "configs", "settings", "env"}, """
This is a configuration file. Your implementation should include:
- Every setting the rest of the project reads
- Sensible defaults and environment overrides"""),
]


def guess_language(filepath):
    """Guess language from file name or extension."""
    base = os.path.basename(filepath).lower()
    if base in _NAME_LANGUAGES:
        return _NAME_LANGUAGES[base]
    _, ext = os.path.splitext(base)
    return _EXT_LANGUAGES.get(ext, "text")


def _path_words(filepath):
    """Lowercased words of every path segment: ``src/UserModel.test.ts`` -> user, model, test, ..."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", filepath)
    return {w.lower() for w in re.split(r"[^A-Za-z0-9]+", spaced) if w}


def file_type_instructions(filepath):
    words = _path_words(filepath)
    for needles, text in _FILE_TYPE_INSTRUCTIONS:
        if words & needles:
            return text
    return ""


def dependency_context(dep_file, produced):
    """Already-produced implementations this file depends on, in dependency order."""
    by_path = {impl.path: impl for impl in produced}
    return [by_path[d] for d in dep_file.dependencies if d in by_path]


def _format_dependencies(impls):
    if not impls:
        return "No dependencies"
    blocks = [
        f"File: {dep.path}\nLanguage: {dep.language}\nCode:\n```{dep.language}\n{dep.code}\n```"
        for dep in impls
    ]
    return "Dependency Implementations:\n" + "\n\n".join(blocks)


class FileSynthesizer:
    """Walks the dependency graph and synthesizes every file, one at a time."""

    name = "synthesizer"

    def __init__(self, settings=None):
        self.settings = settings or load_settings()

    def build_user_message(self, requirements, integrated, dep_file, dependency_impls):
        excerpt = integrated.integrated_vision[:self.settings["vision_excerpt_chars"]]
        return (
            "File to Implement:\n"
            f"Name: {dep_file.name}\n"
            f"Path: {dep_file.path}\n"
            f"Description: {dep_file.description}\n"
            f"Purpose: {dep_file.purpose}\n"
            f"Type: {dep_file.type}\n"
            f"Dependencies: {json.dumps(dep_file.dependencies)}\n\n"
            "Project Requirements:\n" + "\n".join(requirements) + "\n\n"
            f"Architectural Vision:\n{excerpt}\n\n"
            + _format_dependencies(dependency_impls)
            + "\n\nPlease generate a COMPLETE, PRODUCTION-READY implementation for this file."
        )

    def synthesize_file(self, requirements, integrated, dep_file, dependency_impls):
        language = guess_language(dep_file.path)
        prompt = render_prompt("synthesizer", {
            "name": dep_file.name,
            "path": dep_file.path,
            "language": language,
            "file_type_instructions": file_type_instructions(dep_file.path),
        })
        text = call_llm(
            prompt,
            self.build_user_message(requirements, integrated, dep_file, dependency_impls),
            temperature=self.settings["synthesis_temperature"],
            settings=self.settings,
        )
        data = extract_json(text)
        if not isinstance(data, dict) or not isinstance(data.get("code"), str):
            raise ParseError(f"Response for {dep_file.path} is missing code", original=text)

        test_code = data.get("testCode")
        reported = data.get("language")
        return FileImplementation(
            name=dep_file.name,
            path=dep_file.path,
            type=dep_file.type,
            description=dep_file.description,
            purpose=dep_file.purpose,
            dependencies=tuple(dep_file.dependencies),
            language=reported if isinstance(reported, str) and reported else language,
            code=data["code"],
            test_code=test_code if isinstance(test_code, str) and test_code.strip() else None,
        )

    def synthesize_all(self, requirements, integrated, on_progress=None, should_cancel=None):
        """Synthesize every file in ascending (order, path, name).

        Fails fast: the first failing file raises SynthesisError carrying the
        implementations produced before it.
        """
        files = sorted(integrated.dependency_tree, key=synthesis_sort_key)
        produced = []
        total = len(files)
        if on_progress:
            on_progress(0, total)

        for index, dep_file in enumerate(files, 1):
            if should_cancel and should_cancel():
                raise PipelineCancelled(partial=produced)

            logger.info("Synthesizing %d/%d: %s (order %d)",
                        index, total, dep_file.path, dep_file.implementation_order)
            context = dependency_context(dep_file, produced)
            try:
                impl = self.synthesize_file(requirements, integrated, dep_file, context)
            except ArchitectError as e:
                logger.error("Synthesis failed for %s: %s", dep_file.path, e)
                raise SynthesisError(
                    f"Failed to synthesize {dep_file.path}: {e}",
                    partial=produced,
                    failed_file=dep_file.path,
                ) from e

            produced.append(impl)
            if on_progress:
                on_progress(index, total)

        return produced
