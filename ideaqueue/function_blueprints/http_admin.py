"""Admin HTTP routes for reviewing ideas.

Handlers are plain functions of ``(pipeline, req)`` so they can be called
directly; ``build_admin_blueprint`` binds them to routes.
"""
import azure.functions as func

from ideaqueue.pipeline import Pipeline
from ideaqueue.specs.http.admin import (
    ActionResponse,
    AdvanceRequest,
    IdeaListResponse,
    RefineRequest,
    UpdateIdeaRequest,
)
from ideaqueue.shared.logging_utils import info as log_info
from ideaqueue.function_blueprints.http_common import error_response, json_response, parse, read_json


def handle_list_ideas(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    try:
        ideas = pipeline.gateway.list(
            stage=req.params.get("stage"),
            status=req.params.get("status"),
            category_id=req.params.get("categoryId"),
            bucket_id=req.params.get("bucketId"),
        )
    except Exception as exc:
        return error_response(exc)
    return json_response(IdeaListResponse(ideas=ideas, count=len(ideas)))


def handle_get_idea(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    idea_id = req.route_params.get("id")
    try:
        idea = pipeline.gateway.get(idea_id)
    except Exception as exc:
        return error_response(exc, idea_id)
    return json_response(ActionResponse(idea=idea))


def handle_update_idea(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    idea_id = req.route_params.get("id")
    try:
        body = parse(UpdateIdeaRequest, read_json(req))
        idea = pipeline.gateway.update_selection(idea_id, body)
    except Exception as exc:
        return error_response(exc, idea_id)
    return json_response(ActionResponse(idea=idea))


def handle_advance(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    idea_id = req.route_params.get("id")
    try:
        body = parse(AdvanceRequest, read_json(req, required=False))
        idea, event_id = pipeline.gateway.advance(idea_id, body.guidance, body.bucketId)
    except Exception as exc:
        return error_response(exc, idea_id)
    log_info(event_id, "http:advance", ideaId=idea_id)
    return json_response(ActionResponse(idea=idea, eventId=event_id), 202)


def handle_reject(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    idea_id = req.route_params.get("id")
    try:
        idea = pipeline.gateway.reject(idea_id)
    except Exception as exc:
        return error_response(exc, idea_id)
    return json_response(ActionResponse(idea=idea))


def handle_refine(pipeline: Pipeline, req: func.HttpRequest) -> func.HttpResponse:
    idea_id = req.route_params.get("id")
    try:
        body = parse(RefineRequest, read_json(req))
        idea, event_id = pipeline.gateway.refine(idea_id, body.notes, body.stage)
    except Exception as exc:
        return error_response(exc, idea_id)
    log_info(event_id, "http:refine", ideaId=idea_id)
    return json_response(ActionResponse(idea=idea, eventId=event_id), 202)


def build_admin_blueprint(pipeline: Pipeline) -> func.Blueprint:
    bp = func.Blueprint()

    @bp.function_name(name="list_ideas")
    @bp.route(route="ideas", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
    def list_ideas(req: func.HttpRequest) -> func.HttpResponse:
        return handle_list_ideas(pipeline, req)

    @bp.function_name(name="get_idea")
    @bp.route(route="ideas/{id}", methods=["GET"], auth_level=func.AuthLevel.FUNCTION)
    def get_idea(req: func.HttpRequest) -> func.HttpResponse:
        return handle_get_idea(pipeline, req)

    @bp.function_name(name="update_idea")
    @bp.route(route="ideas/{id}", methods=["PATCH"], auth_level=func.AuthLevel.FUNCTION)
    def update_idea(req: func.HttpRequest) -> func.HttpResponse:
        return handle_update_idea(pipeline, req)

    @bp.function_name(name="advance_idea")
    @bp.route(route="ideas/{id}/advance", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
    def advance_idea(req: func.HttpRequest) -> func.HttpResponse:
        return handle_advance(pipeline, req)

    @bp.function_name(name="reject_idea")
    @bp.route(route="ideas/{id}/reject", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
    def reject_idea(req: func.HttpRequest) -> func.HttpResponse:
        return handle_reject(pipeline, req)

    @bp.function_name(name="refine_idea")
    @bp.route(route="ideas/{id}/refine", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
    def refine_idea(req: func.HttpRequest) -> func.HttpResponse:
        return handle_refine(pipeline, req)

    return bp
