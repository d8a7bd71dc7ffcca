"""
Import sub-modules so Celery can register their @app.task decorators.
"""

from grouppoll.workers.tasks import notifications  # noqa

__all__ = ["notifications"]
