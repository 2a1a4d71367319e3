"""Device identity — a random id generated on first run and reused thereafter.

Stored in the settings partition. No collision detection: two terminals
sharing an id only blurs attribution, order ids stay globally unique.
"""

import logging
import uuid

log = logging.getLogger("possync.device")

DEVICE_ID_KEY = "device_id"


def get_device_id(store) -> str:
    """Return this terminal's id, creating and persisting it if missing."""
    device_id = store.get_setting(DEVICE_ID_KEY)
    if device_id:
        return device_id
    device_id = str(uuid.uuid4())
    store.set_setting(DEVICE_ID_KEY, device_id)
    log.info("Generated new device id %s", device_id)
    return device_id
