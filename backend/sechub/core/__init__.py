"""Infrastructure shared by the web process and Celery workers."""
