"""Job catalog, manual runs and run status over HTTP."""
import azure.functions as func

from ideaqueue.pipeline import Pipeline
from ideaqueue.specs.http.jobs import (
    CancelRunResponse,
    JobInfo,
    JobListResponse,
    RunJobResponse,
    RunListResponse,
)
from ideaqueue.function_blueprints.http_common import BadRequest, error_response, json_response, read_json

MAX_RUNS = 200


def handle_list_jobs(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    harness = pipeline.harness
    jobs = [
        JobInfo(
            name=job.name,
            description=job.description,
            events=list(job.events),
            retries=job.retries,
            manual=job.manual,
            schedule=job.schedule,
            running=harness.running_count(job.name),
        )
        for job in harness.jobs
    ]
    return json_response(JobListResponse(jobs=jobs))


def handle_run_job(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    name = req.route_params.get("name")
    try:
        params = read_json(req, required=False)
        run_id = pipeline.gateway.trigger(name, params)
    except Exception as exc:
        return error_response(exc)
    return json_response(RunJobResponse(runId=run_id, jobName=name, params=params), 202)


def handle_list_runs(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    try:
        raw_limit = req.params.get("limit") or "50"
        if not raw_limit.isdigit():
            raise BadRequest("limit must be a positive integer")
        limit = min(int(raw_limit), MAX_RUNS)
        runs = pipeline.gateway.runs(req.params.get("job"), limit)
    except Exception as exc:
        return error_response(exc)
    return json_response(RunListResponse(runs=runs, count=len(runs)))


def handle_get_run(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    run_id = req.route_params.get("runId")
    try:
        run = pipeline.gateway.get_run(run_id)
    except Exception as exc:
        return error_response(exc, run_id)
    return json_response(run)


def handle_cancel_run(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    run_id = req.route_params.get("runId")
    try:
        requested = pipeline.gateway.cancel(run_id)
    except Exception as exc:
        return error_response(exc, run_id)
    return json_response(CancelRunResponse(runId=run_id, cancelRequested=requested), 202 if requested else 200)


def build_jobs_blueprint(pipeline: Pipeline) -> func.Blueprint:
    bp = func.Blueprint()

    @bp.function_name(name="list_jobs")
    @bp.route(route="jobs", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
    def list_jobs(req: func.HttpRequest) -> func.HttpResponse:
        return handle_list_jobs(pipeline, req)

    @bp.function_name(name="run_job")
    @bp.route(route="jobs/{name}/run", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
    def run_job(req: func.HttpRequest) -> func.HttpResponse:
        return handle_run_job(pipeline, req)

    @bp.function_name(name="list_runs")
    @bp.route(route="jobs/runs", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
    def list_runs(req: func.HttpRequest) -> func.HttpResponse:
        return handle_list_runs(pipeline, req)

    @bp.function_name(name="get_run")
    @bp.route(route="jobs/runs/{runId}", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
    def get_run(req: func.HttpRequest) -> func.HttpResponse:
        return handle_get_run(pipeline, req)

    @bp.function_name(name="cancel_run")
    @bp.route(route="jobs/runs/{runId}/cancel", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
    def cancel_run(req: func.HttpRequest) -> func.HttpResponse:
        return handle_cancel_run(pipeline, req)

    return bp
