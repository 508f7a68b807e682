"""System module: host identity and platform metadata."""
import os
import platform
import uuid


def get_device_id():
    # MAC-derived node id; stable across restarts on the same host
    return {"deviceId": f"{uuid.getnode():012x}"}


def get_info():
    return {
        "hostname": platform.node(),
        "system": platform.system(),
        "release": platform.release(),
        "machine": platform.machine(),
        "python": platform.python_version(),
        "cpus": os.cpu_count(),
    }


MODULE = {
    "id": "system",
    "name": "System Information Module",
    "capabilities": ["READ"],
    "commands": {
        "getDeviceId": {
            "description": "Returns a stable identifier for this device",
            "handler": get_device_id,
        },
        "getInfo": {
            "description": "Returns operating system and hardware details",
            "handler": get_info,
        },
    },
}
