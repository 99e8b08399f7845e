"""Startup recovery for port leases.

The port pool lives in memory; after a restart, ports still bound by live
instances must be reserved again before any new deploy can lease them.
Called during server startup before accepting API requests.
"""

import logging

from deploybox.core.interfaces import InstanceRegistry
from deploybox.core.logging_schema import LogEvent
from deploybox.services.ports import PortAllocator

logger = logging.getLogger(__name__)


async def startup_recovery(registry: InstanceRegistry, ports: PortAllocator) -> int:
    """Re-reserve the ports of all persisted instances.

    Expired instances are reserved too; the reaper's first cycle reclaims
    them through the normal teardown path.

    Returns:
        Number of ports reserved.
    """
    instances = await registry.list_all()

    reserved = 0
    for instance in instances:
        if ports.reserve(instance.port, instance.id):
            reserved += 1
        else:
            logger.warning(
                "Could not reserve port %d for instance %s",
                instance.port,
                instance.id,
                extra={
                    "event": LogEvent.RECOVERY_COMPLETED,
                    "instance_id": instance.id,
                    "port": instance.port,
                },
            )

    logger.info(
        "Startup recovery reserved %d of %d ports",
        reserved,
        len(instances),
        extra={"event": LogEvent.RECOVERY_COMPLETED, "reserved": reserved},
    )
    return reserved
