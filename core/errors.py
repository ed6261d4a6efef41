"""Exception taxonomy for the generation pipeline."""


class ArchitectError(Exception):
    """Base class for every pipeline failure."""


class LlmError(ArchitectError):
    """The LLM provider failed or returned a non-success response."""

    def __init__(self, message, status=None, body=None):
        super().__init__(message)
        self.status = status
        self.body = body


class ExtractionError(ArchitectError):
    """No balanced JSON object could be located in the response text."""


class ParseError(ArchitectError):
    """The located JSON text is malformed, or lacks required fields."""

    def __init__(self, message, original="", repaired=""):
        super().__init__(message)
        self.original = original
        self.repaired = repaired


class IncompleteGraphError(ArchitectError):
    """The merged folder tree and the dependency tree disagree on files."""

    def __init__(self, message, missing_from_graph=(), missing_from_tree=()):
        super().__init__(message)
        self.missing_from_graph = list(missing_from_graph)
        self.missing_from_tree = list(missing_from_tree)


class PreconditionError(ArchitectError):
    """A stage was invoked without the input it requires."""

    def __init__(self, message, missing=()):
        super().__init__(message)
        self.missing = list(missing)


class SynthesisError(ArchitectError):
    """File synthesis stopped at one file; earlier results are kept."""

    def __init__(self, message, partial=(), failed_file=None):
        super().__init__(message)
        self.partial = list(partial)
        self.failed_file = failed_file


class PipelineCancelled(ArchitectError):
    """The run was cancelled between units of work."""

    def __init__(self, message="Pipeline run was cancelled", partial=()):
        super().__init__(message)
        self.partial = list(partial)
