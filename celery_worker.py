import os
from celery import Celery
from dotenv import load_dotenv

from firebase_init import initialize_firebase

# --- CELERY WORKER INITIALIZATION ---

# 1. Load environment variables. This MUST happen before anything else.
load_dotenv()

# 2. Initialize Firebase Admin SDK. This will be inherited by the forked worker processes.
initialize_firebase()

# 3. Create the Celery app instance.
celery_app = Celery('tasks',
                    broker=os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
                    include=['tasks']) # This tells Celery to look for tasks in tasks.py

celery_app.conf.update(
    task_track_started=True,
    task_acks_late=True,
)
