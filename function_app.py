import os
import logging
import azure.functions as func

from ideaqueue.pipeline import build_pipeline
from ideaqueue.function_blueprints.http_admin import build_admin_blueprint
from ideaqueue.function_blueprints.http_jobs import build_jobs_blueprint
from ideaqueue.function_blueprints.queue_handlers import build_queue_blueprint, build_timer_blueprint


def _configure_logging() -> None:
    lvl = (os.getenv("AZURE_SDK_LOG_LEVEL") or "").upper()
    if lvl:
        level = getattr(logging, lvl, logging.INFO)
        logging.getLogger("azure").setLevel(level)
        logging.getLogger("azure.cosmos").setLevel(level)
    app_lvl = (os.getenv("IDEAQUEUE_LOG_LEVEL") or "INFO").upper()
    logging.getLogger("ideaqueue").setLevel(getattr(logging, app_lvl, logging.INFO))


_configure_logging()

app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)

pipeline = build_pipeline()

app.register_functions(build_admin_blueprint(pipeline))
app.register_functions(build_jobs_blueprint(pipeline))
app.register_functions(build_timer_blueprint(pipeline))
# Queue triggers only when events travel through Storage queues
if pipeline.settings.dispatchTransport == "queue":
    app.register_functions(build_queue_blueprint(pipeline))
