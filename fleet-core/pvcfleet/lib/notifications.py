#!/usr/bin/env python3

# notifications.py - PVC Fleet notifications library
# Part of the Parallel Virtual Cluster (PVC) system
#
#    Copyright (C) 2018-2021 Joshua M. Boniface <joshua@boniface.me>
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation, version 3.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.
#
#    You should have received a copy of the GNU General Public License
#    along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
###############################################################################

import json
import requests

from celery.utils.log import get_task_logger


logger = get_task_logger(__name__)


# Webhook HTTP verbs accepted in the notifications "action" setting
NOTIFICATION_ACTIONS = ["post", "put"]

NOTIFICATION_TIMEOUT = 10


def format_body(config, status, message):
    """
    Fill the configured body template with the status icon and message
    """
    icon = config["notifications_icons"].get(status, "")
    return {
        element: value.format(icon=icon, message=message)
        for element, value in config["notifications_body"].items()
    }


def send_webhook(config, status, message):
    """
    Send a notification webhook about a provisioning event

    Delivery failures are logged and never raised.
    """
    if not config.get("notifications_enabled"):
        return

    requests_actions = {
        "post": requests.post,
        "put": requests.put,
    }
    action = requests_actions[config["notifications_action"]]

    logger.debug(f"Sending {status} notification to {config['notifications_uri']}")
    try:
        result = action(
            config["notifications_uri"],
            headers={"content-type": "application/json"},
            data=json.dumps(format_body(config, status, message)),
            timeout=NOTIFICATION_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        logger.warning(f"Failed to send {status} notification: {e}")
        return

    logger.debug(f"Result: {result}")
