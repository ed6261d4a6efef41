"""Pipeline state models shared across all stages."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum

from core.errors import ParseError


def _with_name(p, name):
    if name and p != name and not p.endswith("/" + name):
        return f"{p}/{name}" if p else name
    return p


def file_key(path, name="", root="", known=()):
    """Normalize a file reference to a root-relative path.

    ``/src`` + ``index.js`` -> ``src/index.js``; ``./src/index.js`` -> ``src/index.js``.
    A leading ``<root>/`` segment is dropped when ``root`` is given, unless
    the unstripped path is one of ``known`` (a subfolder named like the root).
    """
    p = (path or "").strip().replace("\\", "/")
    p = re.sub(r"/+", "/", p)
    while p.startswith("./"):
        p = p[2:]
    p = p.strip("/")
    if known and _with_name(p, name) in known:
        return _with_name(p, name)
    if root and (p == root or p.startswith(root + "/")) and p != name:
        p = p[len(root):].lstrip("/")
    return _with_name(p, name)


def _require(data, keys, what):
    if not isinstance(data, dict):
        raise ParseError(f"{what} must be an object, got {type(data).__name__}")
    missing = [k for k in keys if not isinstance(data.get(k), str)]
    if missing:
        raise ParseError(f"{what} is missing required field(s): {', '.join(missing)}")


@dataclass(frozen=True)
class FileDescriptor:
    name: str
    description: str = ""
    purpose: str = ""

    @classmethod
    def from_dict(cls, data):
        _require(data, ["name"], "File descriptor")
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            purpose=data.get("purpose") or "",
        )

    def to_dict(self):
        return {"name": self.name, "description": self.description, "purpose": self.purpose}


@dataclass(frozen=True)
class FolderNode:
    name: str
    description: str
    purpose: str
    files: tuple = ()           # FileDescriptor
    subfolders: tuple = ()      # FolderNode

    @classmethod
    def from_dict(cls, data, _depth=0):
        """Build a tree from decoded JSON, rejecting nodes without name/description/purpose."""
        _require(data, ["name", "description", "purpose"], "Folder node")
        if _depth > 64:
            raise ParseError(f"Folder tree is nested too deeply at {data['name']!r}")
        files = data.get("files") or []
        subfolders = data.get("subfolders") or []
        if not isinstance(files, list) or not isinstance(subfolders, list):
            raise ParseError(f"Folder node {data['name']!r} has non-list files/subfolders")
        return cls(
            name=data["name"],
            description=data["description"],
            purpose=data["purpose"],
            files=tuple(FileDescriptor.from_dict(f) for f in files),
            subfolders=tuple(cls.from_dict(s, _depth + 1) for s in subfolders),
        )

    def to_dict(self):
        return {
            "name": self.name,
            "description": self.description,
            "purpose": self.purpose,
            "files": [f.to_dict() for f in self.files],
            "subfolders": [s.to_dict() for s in self.subfolders],
        }

    def file_paths(self, prefix=""):
        """Every leaf file as a path relative to this node (its own name excluded)."""
        paths = [file_key(prefix, f.name) for f in self.files]
        for sub in self.subfolders:
            sub_prefix = f"{prefix}/{sub.name}" if prefix else sub.name
            paths.extend(sub.file_paths(sub_prefix))
        return paths


@dataclass(frozen=True)
class SpecialistVision:
    role: str
    expertise: str
    vision_text: str
    proposed_tree: FolderNode

    def to_dict(self):
        return {
            "role": self.role,
            "expertise": self.expertise,
            "visionText": self.vision_text,
            "proposedTree": self.proposed_tree.to_dict(),
        }


@dataclass
class DependencyFile:
    name: str
    path: str                   # root-relative, includes the file name
    description: str = ""
    purpose: str = ""
    type: str = ""              # "component", "model", "controller", ...
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)
    implementation_order: int = 1
    advisory_dependencies: list[str] = field(default_factory=list)  # edges demoted to break cycles

    @property
    def key(self):
        return self.path

    def to_dict(self):
        return {
            "name": self.name,
            "path": self.path,
            "description": self.description,
            "purpose": self.purpose,
            "type": self.type,
            "dependencies": list(self.dependencies),
            "dependents": list(self.dependents),
            "implementationOrder": self.implementation_order,
            "advisoryDependencies": list(self.advisory_dependencies),
        }


@dataclass
class IntegrationResult:
    integrated_vision: str
    resolution_notes: list[str]
    root_folder: FolderNode
    dependency_tree: list[DependencyFile]

    def to_dict(self):
        return {
            "integratedVision": self.integrated_vision,
            "resolutionNotes": list(self.resolution_notes),
            "rootFolder": self.root_folder.to_dict(),
            "dependencyTree": {"files": [f.to_dict() for f in self.dependency_tree]},
        }


@dataclass(frozen=True)
class FileImplementation:
    name: str
    path: str
    type: str
    description: str
    purpose: str
    dependencies: tuple
    language: str
    code: str
    test_code: str | None = None

    def to_dict(self):
        data = {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "description": self.description,
            "purpose": self.purpose,
            "dependencies": list(self.dependencies),
            "language": self.language,
            "code": self.code,
        }
        if self.test_code is not None:
            data["testCode"] = self.test_code
        return data


class Stage(str, Enum):
    """Last successfully completed stage of a run."""

    IDLE = "idle"
    SPECIALISTS = "specialists"
    INTEGRATION = "integration"
    SYNTHESIS = "synthesis"

    @property
    def label(self):
        return _STAGE_LABELS[self]


_STAGE_LABELS = {
    Stage.IDLE: "Idle",
    Stage.SPECIALISTS: "Stage1",
    Stage.INTEGRATION: "Stage2",
    Stage.SYNTHESIS: "Stage3",
}


@dataclass
class Progress:
    completed: int = 0
    total: int = 0

    def as_tuple(self):
        return (self.completed, self.total)


@dataclass
class StageFailure:
    stage: str          # "Stage1", "Stage2", "Stage3"
    message: str
    error_type: str = ""
    failed_file: str | None = None      # Stage3 only


@dataclass
class PipelineRun:
    requirements: tuple
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    roles: list[str] = field(default_factory=list)
    stage: Stage = Stage.IDLE
    in_flight: Stage | None = None      # stage currently being generated
    visions: list[SpecialistVision] = field(default_factory=list)
    integration: IntegrationResult | None = None
    implementations: list[FileImplementation] = field(default_factory=list)
    partial_implementations: list[FileImplementation] = field(default_factory=list)
    specialist_progress: Progress = field(default_factory=Progress)
    file_progress: Progress = field(default_factory=Progress)
    error: StageFailure | None = None
    cancelled: bool = False

    @property
    def is_done(self):
        return self.stage == Stage.SYNTHESIS
