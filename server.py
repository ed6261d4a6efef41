#!/usr/bin/env python3
"""HTTP API for Syntax Architect pipeline runs."""

import logging
import threading
import time

from flask import Flask, jsonify, request

from config.defaults import configure_logging, load_settings
from core.errors import PreconditionError
from core.orchestrator import PipelineOrchestrator
from manager.role_selector import select_roles
from utils.folder_naming import get_output_dir

logger = logging.getLogger(__name__)

app = Flask(__name__)
settings = load_settings()
orchestrator = PipelineOrchestrator(settings)

# Pipeline runs keyed by run_id: {id: {"run": ..., "created": timestamp}}
_jobs = {}
_jobs_lock = threading.Lock()
_MAX_JOBS = settings["max_jobs"]    # prevent unbounded memory growth
_JOB_TTL = settings["job_ttl"]


def _cleanup_jobs():
    """Remove expired jobs. Called under _jobs_lock."""
    now = time.time()
    expired = [jid for jid, job in _jobs.items() if now - job["created"] > _JOB_TTL]
    for jid in expired:
        del _jobs[jid]
    # If still over limit, remove oldest
    if len(_jobs) > _MAX_JOBS:
        by_age = sorted(_jobs.items(), key=lambda x: x[1]["created"])
        for jid, _ in by_age[:len(_jobs) - _MAX_JOBS]:
            del _jobs[jid]


def _store_job(run):
    with _jobs_lock:
        _cleanup_jobs()
        _jobs[run.run_id] = {"run": run, "created": time.time(), "busy": False}
    return run.run_id


def _live_job(run_id):
    """Job dict for an id, or None if not found/expired. Called under _jobs_lock."""
    job = _jobs.get(run_id)
    if job and time.time() - job["created"] > _JOB_TTL:
        _jobs.pop(run_id, None)
        job = None
    return job


def _get_job_run(run_id):
    """Get the run for an id, or None if not found/expired."""
    with _jobs_lock:
        job = _live_job(run_id)
    return job["run"] if job else None


def run_to_dict(run):
    """Serialize a PipelineRun to a JSON-safe dict."""
    return {
        "runId": run.run_id,
        "requirements": list(run.requirements),
        "roles": list(run.roles),
        "stage": run.stage.label,
        "inFlight": run.in_flight.label if run.in_flight else None,
        "done": run.is_done,
        "specialistProgress": list(run.specialist_progress.as_tuple()),
        "fileProgress": list(run.file_progress.as_tuple()),
        "visions": [v.to_dict() for v in run.visions],
        "integration": run.integration.to_dict() if run.integration else None,
        "implementations": [i.to_dict() for i in run.implementations],
        "partialImplementations": [i.to_dict() for i in run.partial_implementations],
        "error": (
            {"stage": run.error.stage, "message": run.error.message,
             "type": run.error.error_type, "file": run.error.failed_file}
            if run.error else None
        ),
    }


def _requirements_from_body():
    data = request.get_json(silent=True) or {}
    requirements = data.get("requirements")
    if isinstance(requirements, str):
        requirements = [requirements]
    return requirements


def _respond(run):
    status = 502 if run.error else 200
    return jsonify(run_to_dict(run)), status


def _with_run(run_id, action):
    # Claim the run under the lock so two requests cannot both start a stage.
    with _jobs_lock:
        job = _live_job(run_id)
        if not job:
            return jsonify({"error": "Run not found or expired"}), 404
        if job["busy"] or job["run"].in_flight is not None:
            return jsonify({"error": "A stage is already in progress for this run"}), 409
        job["busy"] = True
    try:
        run = action(job["run"])
    except PreconditionError as e:
        return jsonify({"error": str(e), "missing": e.missing}), 400
    finally:
        with _jobs_lock:
            job["busy"] = False
    return _respond(run)


@app.route("/api/roles", methods=["POST"])
def api_roles():
    requirements = _requirements_from_body()
    if not isinstance(requirements, list):
        return jsonify({"error": "Valid requirements array is required"}), 400
    return jsonify({"roles": select_roles(requirements)})


@app.route("/api/runs", methods=["POST"])
def api_start():
    """Create a run and generate specialist visions (Stage 1)."""
    requirements = _requirements_from_body()
    if not isinstance(requirements, list):
        return jsonify({"error": "Valid requirements array is required"}), 400
    try:
        run = orchestrator.create_run(requirements)
    except PreconditionError as e:
        return jsonify({"error": str(e), "missing": e.missing}), 400

    _store_job(run)
    return _with_run(run.run_id, orchestrator.retry)


@app.route("/api/runs/<run_id>")
def api_status(run_id):
    run = _get_job_run(run_id)
    if not run:
        return jsonify({"error": "Run not found or expired"}), 404
    return jsonify(run_to_dict(run))


@app.route("/api/runs/<run_id>/advance", methods=["POST"])
def api_advance(run_id):
    return _with_run(run_id, orchestrator.advance)


@app.route("/api/runs/<run_id>/retry", methods=["POST"])
def api_retry(run_id):
    return _with_run(run_id, orchestrator.retry)


@app.route("/api/runs/<run_id>/reset", methods=["POST"])
def api_reset(run_id):
    return _with_run(run_id, orchestrator.reset)


@app.route("/api/runs/<run_id>/cancel", methods=["POST"])
def api_cancel(run_id):
    """Ask the in-flight stage to stop at its next file or stage boundary."""
    with _jobs_lock:
        job = _live_job(run_id)
        if not job:
            return jsonify({"error": "Run not found or expired"}), 404
        if not job["busy"] and job["run"].in_flight is None:
            return jsonify({"error": "Nothing is in progress for this run"}), 409
        orchestrator.cancel(job["run"])
    return jsonify(run_to_dict(job["run"]))


@app.route("/api/runs/<run_id>/export", methods=["POST"])
def api_export(run_id):
    """Write a finished run's files to disk."""
    run = _get_job_run(run_id)
    if not run:
        return jsonify({"error": "Run not found or expired"}), 404
    if not run.is_done:
        return jsonify({"error": f"Run is at {run.stage.label}; Stage3 must complete first"}), 400

    output_dir = get_output_dir(run.requirements)
    try:
        written = orchestrator.write_files(run, output_dir)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"runId": run.run_id, "outputDir": output_dir, "writtenFiles": written})


if __name__ == "__main__":
    configure_logging()
    port = settings["server_port"]
    print(f"Syntax Architect API running at http://localhost:{port}")
    app.run(debug=False, port=port)
