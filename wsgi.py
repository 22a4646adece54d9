from tribu import create_app

app = create_app()

# Run exactly one process with IS_SYNC_SCHEDULER=1 so the outbox tick is scheduled once:
#   IS_SYNC_SCHEDULER=1 gunicorn -w 1 wsgi:app
