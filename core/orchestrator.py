"""Pipeline orchestrator - three-stage state machine with caller-driven advancing."""

import logging
import os

from agents.integrator import IntegratorAgent
from agents.specialist import SpecialistAgent
from agents.synthesizer import FileSynthesizer
from config.defaults import load_settings
from core.errors import ArchitectError, PipelineCancelled, PreconditionError, SynthesisError
from core.state import PipelineRun, Progress, Stage, StageFailure
from manager.role_selector import select_roles, specialist_roles

logger = logging.getLogger(__name__)

_NEXT_STAGE = {
    Stage.IDLE: Stage.SPECIALISTS,
    Stage.SPECIALISTS: Stage.INTEGRATION,
    Stage.INTEGRATION: Stage.SYNTHESIS,
}


def validate_requirements(requirements):
    """Return the requirements as a tuple of non-blank strings, or raise PreconditionError."""
    if isinstance(requirements, str):
        requirements = [requirements]
    cleaned = tuple(
        r.strip() for r in (requirements or []) if isinstance(r, str) and r.strip()
    )
    if not cleaned:
        raise PreconditionError("At least one non-empty requirement is required",
                                missing=["requirements"])
    return cleaned


class PipelineOrchestrator:
    """Runs specialists → integration → synthesis, one stage per call.

    The caller decides when to advance; the orchestrator never moves on by
    itself. A failed stage leaves the run at the last completed stage with
    its output intact and the error recorded on ``run.error``.
    """

    def __init__(self, settings=None, on_progress=None):
        self.settings = settings or load_settings()
        self.specialist = SpecialistAgent(self.settings)
        self.integrator = IntegratorAgent(self.settings)
        self.synthesizer = FileSynthesizer(self.settings)
        self.on_progress = on_progress      # fn(run, stage_label, completed, total)

    def create_run(self, requirements) -> PipelineRun:
        return PipelineRun(requirements=validate_requirements(requirements))

    def start(self, requirements) -> PipelineRun:
        """Create a run and generate the specialist visions (Stage 1)."""
        run = self.create_run(requirements)
        logger.info("Run %s started with %d requirement(s)", run.run_id, len(run.requirements))
        return self._run_stage(run, Stage.SPECIALISTS)

    def advance(self, run: PipelineRun) -> PipelineRun:
        """Run the stage after the last completed one."""
        if run.stage == Stage.IDLE:
            raise PreconditionError("Run has not been started", missing=["visions"])
        if run.stage == Stage.SYNTHESIS:
            raise PreconditionError("Run is already complete")
        return self._run_stage(run, _NEXT_STAGE[run.stage])

    def retry(self, run: PipelineRun) -> PipelineRun:
        """Re-attempt the stage that follows the last completed one."""
        if run.stage == Stage.SYNTHESIS:
            raise PreconditionError("Run is already complete")
        return self._run_stage(run, _NEXT_STAGE[run.stage])

    def reset(self, run: PipelineRun) -> PipelineRun:
        """Discard every stage output and return to Idle; requirements are kept."""
        run.roles = []
        run.stage = Stage.IDLE
        run.in_flight = None
        run.visions = []
        run.integration = None
        run.implementations = []
        run.partial_implementations = []
        run.specialist_progress = Progress()
        run.file_progress = Progress()
        run.error = None
        run.cancelled = False
        logger.info("Run %s reset", run.run_id)
        return run

    def cancel(self, run: PipelineRun) -> PipelineRun:
        """Stop the run at the next stage or file boundary."""
        run.cancelled = True
        return run

    def run_full(self, requirements, output_dir=None, stop_after=None):
        """Run every stage in sequence, then write files if output_dir is given.

        Stops at the first failure; inspect ``run.error``.
        """
        run = self.start(requirements)
        while run.error is None and not run.is_done:
            if stop_after is not None and _stage_number(run.stage) >= stop_after:
                break
            run = self.advance(run)

        if run.is_done and output_dir:
            self.write_files(run, output_dir)
        return run

    # -- stages -----------------------------------------------------------

    def _run_stage(self, run, stage):
        self._check_preconditions(run, stage)

        run.error = None
        run.in_flight = stage
        logger.info("Run %s: %s (%s) starting", run.run_id, stage.label, stage.value)
        try:
            if run.cancelled:
                raise PipelineCancelled()
            if stage == Stage.SPECIALISTS:
                self._generate_visions(run)
            elif stage == Stage.INTEGRATION:
                run.integration = self.integrator.integrate(list(run.requirements), run.visions)
                run.implementations = []
                run.partial_implementations = []
            else:
                self._synthesize(run)
        except ArchitectError as e:
            if isinstance(e, (SynthesisError, PipelineCancelled)) and stage == Stage.SYNTHESIS:
                run.partial_implementations = list(e.partial)
            if isinstance(e, PipelineCancelled):
                # the cancel request is consumed; retry may proceed
                run.cancelled = False
            run.error = _stage_failure(stage, e)
            logger.error("Run %s: %s failed, staying at %s: %s",
                         run.run_id, stage.label, run.stage.label, e)
            return run
        finally:
            run.in_flight = None

        run.stage = stage
        logger.info("Run %s: %s complete", run.run_id, stage.label)
        return run

    def _check_preconditions(self, run, stage):
        if stage == Stage.SPECIALISTS:
            if not run.requirements:
                raise PreconditionError("Stage1 requires requirements", missing=["requirements"])
        elif stage == Stage.INTEGRATION:
            missing = [] if run.visions else ["visions"]
            if missing:
                raise PreconditionError(
                    f"Stage2 requires Stage1 output; missing: {', '.join(missing)}",
                    missing=missing,
                )
        elif stage == Stage.SYNTHESIS:
            integration = run.integration
            if integration is None:
                missing = ["integration"]
            else:
                missing = []
                if integration.root_folder is None:
                    missing.append("rootFolder")
                if not integration.dependency_tree:
                    missing.append("dependencyTree")
            if missing:
                raise PreconditionError(
                    f"Stage3 requires Stage2 output; missing: {', '.join(missing)}",
                    missing=missing,
                )

    def _generate_visions(self, run):
        run.roles = select_roles(run.requirements)
        roles = specialist_roles(run.roles)
        logger.info("Selected specialists: %s", ", ".join(roles))

        visions = []
        self._progress(run, Stage.SPECIALISTS, 0, len(roles))
        for index, role in enumerate(roles):
            if run.cancelled:
                raise PipelineCancelled()
            visions.append(
                self.specialist.generate_vision(list(run.requirements), role, index, len(roles))
            )
            self._progress(run, Stage.SPECIALISTS, index + 1, len(roles))

        run.visions = visions
        run.integration = None
        run.implementations = []
        run.partial_implementations = []

    def _synthesize(self, run):
        run.partial_implementations = []
        run.implementations = self.synthesizer.synthesize_all(
            list(run.requirements),
            run.integration,
            on_progress=lambda done, total: self._progress(run, Stage.SYNTHESIS, done, total),
            should_cancel=lambda: run.cancelled,
        )

    def _progress(self, run, stage, completed, total):
        target = run.specialist_progress if stage == Stage.SPECIALISTS else run.file_progress
        target.completed = completed
        target.total = total
        if self.on_progress:
            self.on_progress(run, stage.label, completed, total)

    # -- export -----------------------------------------------------------

    def write_files(self, run, output_dir):
        """Write synthesized files (and their tests) under output_dir.

        Returns the list of relative paths written.
        """
        if not run.implementations:
            return []

        os.makedirs(output_dir, exist_ok=True)
        root = os.path.realpath(output_dir)
        graph_paths = {impl.path for impl in run.implementations}
        written = []
        for impl in run.implementations:
            outputs = [(impl.path, impl.code)]
            if impl.test_code:
                stem, ext = os.path.splitext(impl.path)
                test_path = f"{stem}.test{ext}"
                if test_path in graph_paths:
                    logger.warning("Skipping test code for %s: %s is a generated file",
                                   impl.path, test_path)
                else:
                    outputs.append((test_path, impl.test_code))
            for rel_path, content in outputs:
                resolved = os.path.realpath(os.path.join(output_dir, rel_path))
                if not resolved.startswith(root + os.sep):
                    raise ValueError(f"Path escapes output directory: {rel_path}")
                os.makedirs(os.path.dirname(resolved), exist_ok=True)
                with open(resolved, "w", encoding="utf-8") as fp:
                    fp.write(content)
                written.append(rel_path)
        logger.info("Run %s: wrote %d file(s) to %s", run.run_id, len(written), output_dir)
        return written


def _stage_failure(stage, error):
    """Record the underlying error; SynthesisError only adds which file failed."""
    failed_file = None
    if isinstance(error, SynthesisError):
        failed_file = error.failed_file
        if isinstance(error.__cause__, ArchitectError):
            error = error.__cause__
    return StageFailure(stage=stage.label, message=str(error),
                        error_type=type(error).__name__, failed_file=failed_file)


def _stage_number(stage):
    return {Stage.IDLE: 0, Stage.SPECIALISTS: 1, Stage.INTEGRATION: 2, Stage.SYNTHESIS: 3}[stage]
