from celery.schedules import crontab

# Celery Beat Schedule Configuration for the escrow hold lifecycle
CELERY_BEAT_SCHEDULE = {
    # ============================================
    # ESCROW AUTO-RELEASE
    # ============================================
    # Release every pending hold whose 48-hour window has elapsed
    "release-due-escrow-holds": {
        "task": "apps.escrow.tasks.release_due_escrow_holds",
        "schedule": crontab(minute="*/5"),  # Every 5 minutes
        "options": {
            "expires": 300,  # Task expires after 5 minutes
            "retry": True,
            "retry_policy": {
                "max_retries": 3,
                "interval_start": 10,
                "interval_step": 10,
                "interval_max": 60,
            },
        },
    },
    # ============================================
    # HOLD REPAIR
    # ============================================
    # Create holds for delivered orders whose hold creation failed
    "repair-missing-escrow-holds": {
        "task": "apps.escrow.tasks.repair_missing_escrow_holds",
        "schedule": crontab(minute="*/15"),  # Every 15 minutes
        "options": {
            "expires": 600,  # Task expires after 10 minutes
        },
    },
}
