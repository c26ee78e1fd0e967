"""
Celery can't take a factory function as its application instance:

  $ celery worker --app=require_matching_label.create_celery_app()

so point it at this module instead:

  $ celery worker --app=require_matching_label.worker
"""

from require_matching_label import create_celery_app

application = create_celery_app(config="worker")
