"""Clock module: current local time and date."""
from datetime import datetime


def get_time():
    now = datetime.now().astimezone()
    return {
        "time": now.strftime("%H:%M:%S"),
        "timezone": now.tzname(),
        "iso": now.isoformat(timespec="seconds"),
    }


def get_date():
    now = datetime.now().astimezone()
    return {
        "date": now.date().isoformat(),
        "weekday": now.strftime("%A"),
    }


MODULE = {
    "id": "time",
    "name": "Time Module",
    "capabilities": ["READ"],
    "commands": {
        "getTime": {
            "description": "Returns the current local time",
            "handler": get_time,
        },
        "getDate": {
            "description": "Returns the current local date and weekday",
            "handler": get_date,
        },
    },
}
