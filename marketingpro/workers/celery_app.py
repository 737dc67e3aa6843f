# marketingpro/workers/celery_app.py
from celery import Celery, Task
from celery.utils.log import get_task_logger
from flask import current_app, has_app_context

logger = get_task_logger(__name__)


def celery_init_app(app):
    """Bind a Celery app to the Flask app so every task runs in an app context."""

    class FlaskTask(Task):

        def __call__(self, *args, **kwargs):
            # Eager tasks already run inside the caller's app context
            if has_app_context() and current_app._get_current_object() is app:
                return self._run_logged(*args, **kwargs)
            with app.app_context():
                return self._run_logged(*args, **kwargs)

        def _run_logged(self, *args, **kwargs):
            try:
                return self.run(*args, **kwargs)
            except Exception as exc:
                logger.error(
                    "Task failed",
                    extra={"task": self.name, "task_id": self.request.id, "error": str(exc)},
                )
                raise

    celery_app = Celery(app.name, task_cls=FlaskTask, include=["marketingpro.workers.tasks"])
    celery_app.config_from_object(app.config["CELERY"])
    celery_app.set_default()
    app.extensions["celery"] = celery_app
    return celery_app
