#!/usr/bin/env python3
"""
Regenerate the contract files under ideaqueue/specs/ from the Pydantic models.

    python scripts/generate_specs.py

writes schemas/<name>.json plus a .yaml twin for every registered model,
and openapi.json / openapi.yaml describing the admin HTTP API.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import yaml

ROOT = Path(__file__).resolve().parents[1]
SPECS = ROOT / "ideaqueue" / "specs"

sys.path.insert(0, str(ROOT))

from ideaqueue.specs.schema_registry import SCHEMA_MODELS  # noqa: E402


def dump_document(doc: dict, target: Path) -> None:
    """Write ``doc`` to ``target`` (JSON) and to the same stem with a .yaml suffix."""
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8")
    target.with_suffix(".yaml").write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")


def generate_model_schemas(out_dir: Path) -> None:
    schema_dir = out_dir / "schemas"
    for filename, model in SCHEMA_MODELS.items():
        dump_document(model.model_json_schema(), schema_dir / filename)


def _ref(filename: str) -> dict:
    return {"$ref": f"#/components/schemas/{SCHEMA_MODELS[filename].__name__}"}


def _json(description: str, filename: str) -> dict:
    return {"description": description, "content": {"application/json": {"schema": _ref(filename)}}}


def _errors(*codes: str) -> dict:
    descriptions = {
        "400": "Invalid request or transition",
        "404": "Idea or run not found",
        "409": "Lost a concurrent update; re-read and retry",
    }
    return {code: _json(descriptions[code], "error.response.schema.json") for code in codes}


def _body(filename: str, required: bool = True) -> dict:
    return {"required": required, "content": {"application/json": {"schema": _ref(filename)}}}


def _path_param(name: str) -> dict:
    return {"in": "path", "name": name, "required": True, "schema": {"type": "string"}}


def build_openapi() -> dict:
    components = {"schemas": {model.__name__: model.model_json_schema() for model in SCHEMA_MODELS.values()}}
    action = "action.response.schema.json"

    paths = {
        "/ideas": {
            "get": {
                "summary": "List ideas",
                "operationId": "listIdeas",
                "parameters": [
                    {"in": "query", "name": name, "required": False, "schema": {"type": "string"}}
                    for name in ("stage", "status", "categoryId", "bucketId")
                ],
                "responses": {"200": _json("Matching ideas, newest first", "idea.list.response.schema.json")},
            }
        },
        "/ideas/{id}": {
            "get": {
                "summary": "Get one idea",
                "operationId": "getIdea",
                "parameters": [_path_param("id")],
                "responses": {"200": _json("The idea", action), **_errors("404")},
            },
            "patch": {
                "summary": "Edit operator selections",
                "operationId": "updateIdea",
                "parameters": [_path_param("id")],
                "requestBody": _body("update_idea.request.schema.json"),
                "responses": {"200": _json("Updated idea", action), **_errors("400", "404", "409")},
            },
        },
        "/ideas/{id}/advance": {
            "post": {
                "summary": "Approve the current stage and start the next stage's job",
                "operationId": "advanceIdea",
                "parameters": [_path_param("id")],
                "requestBody": _body("advance.request.schema.json", required=False),
                "responses": {"202": _json("Next stage started", action), **_errors("400", "404", "409")},
            }
        },
        "/ideas/{id}/reject": {
            "post": {
                "summary": "Reject the idea (terminal)",
                "operationId": "rejectIdea",
                "parameters": [_path_param("id")],
                "responses": {"200": _json("Rejected idea", action), **_errors("400", "404", "409")},
            }
        },
        "/ideas/{id}/refine": {
            "post": {
                "summary": "Regenerate the current stage from feedback",
                "operationId": "refineIdea",
                "parameters": [_path_param("id")],
                "requestBody": _body("refine.request.schema.json"),
                "responses": {"202": _json("Refinement started", action), **_errors("400", "404", "409")},
            }
        },
        "/jobs": {
            "get": {
                "summary": "List jobs",
                "operationId": "listJobs",
                "responses": {"200": _json("Job catalog", "job.list.response.schema.json")},
            }
        },
        "/jobs/{name}/run": {
            "post": {
                "summary": "Run a job manually",
                "operationId": "runJob",
                "parameters": [_path_param("name")],
                "requestBody": {"required": False, "content": {"application/json": {"schema": {"type": "object"}}}},
                "responses": {"202": _json("Run started", "run_job.response.schema.json"), **_errors("400", "404")},
            }
        },
        "/jobs/runs": {
            "get": {
                "summary": "List recent runs",
                "operationId": "listRuns",
                "parameters": [
                    {"in": "query", "name": "job", "required": False, "schema": {"type": "string"}},
                    {"in": "query", "name": "limit", "required": False, "schema": {"type": "integer"}},
                ],
                "responses": {"200": _json("Runs, newest first", "run.list.response.schema.json")},
            }
        },
        "/jobs/runs/{runId}": {
            "get": {
                "summary": "Get one run",
                "operationId": "getRun",
                "parameters": [_path_param("runId")],
                "responses": {"200": _json("The run", "job.run.schema.json"), **_errors("404")},
            }
        },
        "/jobs/runs/{runId}/cancel": {
            "post": {
                "summary": "Cancel a queued or running run",
                "operationId": "cancelRun",
                "parameters": [_path_param("runId")],
                "responses": {
                    "202": _json("Cancellation requested", "cancel_run.response.schema.json"),
                    "200": _json("Run already finished", "cancel_run.response.schema.json"),
                    **_errors("404"),
                },
            }
        },
    }

    return {
        "openapi": "3.0.3",
        "info": {
            "title": "ideaqueue admin API",
            "version": "0.1.0",
            "description": "Review and job-control endpoints of the ideaqueue Functions app.",
        },
        "servers": [{"url": "http://localhost:7071/api", "description": "Local Functions host"}],
        "paths": paths,
        "components": components,
    }


def generate_openapi(out_dir: Path) -> None:
    dump_document(build_openapi(), out_dir / "openapi.json")


def main(out_dir: Optional[Path] = None) -> None:
    out_dir = Path(out_dir or SPECS)
    generate_model_schemas(out_dir)
    generate_openapi(out_dir)
    print(f"Specs generated under {out_dir}")


if __name__ == "__main__":
    main()
