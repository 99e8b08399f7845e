"""Logging field schema - v1.0

Standard fields (added to all logs):
- schema_version: Log schema version
- service: Service name (deploybox)
- event: Event type (deploy_succeeded, teardown_failed, etc.)
- trace_id: Request trace ID
- duration_ms: Duration in milliseconds

High cardinality fields (OK in logs, NOT in metric labels):
- instance_id: Instance ID
- owner_id: User ID
- port: Leased host port
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Standard log event types.

    Use these event types in the 'event' extra field for consistent
    log filtering and analysis.
    """

    # Deploy transaction
    DEPLOY_STARTED = "deploy_started"
    DEPLOY_SUCCEEDED = "deploy_succeeded"
    DEPLOY_FAILED = "deploy_failed"
    ROLLBACK_COMPLETED = "rollback_completed"
    ROLLBACK_STEP_FAILED = "rollback_step_failed"
    CLEANUP_FAILED = "cleanup_failed"

    # Pipeline stages
    BUNDLE_INGESTED = "bundle_ingested"
    STRUCTURE_CLASSIFIED = "structure_classified"
    SPEC_SYNTHESIZED = "spec_synthesized"
    PORT_LEASED = "port_leased"
    PORT_RELEASED = "port_released"

    # Engine events
    IMAGE_BUILT = "image_built"
    IMAGE_REMOVED = "image_removed"
    CONTAINER_CREATED = "container_created"
    CONTAINER_STARTED = "container_started"
    CONTAINER_REMOVED = "container_removed"
    ENGINE_ERROR = "engine_error"

    # Teardown / reaper
    TEARDOWN_COMPLETED = "teardown_completed"
    TEARDOWN_FAILED = "teardown_failed"
    REAPER_CYCLE_COMPLETED = "reaper_cycle_completed"

    # Lifecycle events
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"
    RECOVERY_COMPLETED = "recovery_completed"

    # API events
    REQUEST_COMPLETE = "request_complete"
    REQUEST_FAILED = "request_failed"

    # DB events
    DB_CONNECTED = "db_connected"
    DB_ERROR = "db_error"
