#!/usr/bin/env python3

# Provider.py - PVC Fleet provider configuration
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

import os
import yaml

from pvcfleet.lib.fleet import FleetSession
from pvcfleet.lib.notifications import NOTIFICATION_ACTIONS
from pvcfleet.lib.storage import FleetStorage, SQLiteStorage

# Provider version
version = "0.1"

DEFAULT_FLEET_TIMEOUT = 30
DEFAULT_STORAGE_PATH = "/var/lib/pvcfleet/storage.db"


##########################################################
# Exceptions
##########################################################


class MalformedConfigurationError(Exception):
    """
    An exception when parsing the PVC fleet configuration file
    """

    def __init__(self, error=None):
        self.msg = f"ERROR: Configuration file is malformed: {error}"

    def __str__(self):
        return str(self.msg)


##########################################################
# Helper Functions
##########################################################


def strtobool(stringv):
    if stringv is None:
        return False
    if isinstance(stringv, bool):
        return bool(stringv)
    return str(stringv).strip().lower() in ["y", "yes", "t", "true", "on", "1"]


##########################################################
# Configuration Parsing
##########################################################


def get_config_path():
    try:
        return os.environ["PVCFLEET_CONFIG_FILE"]
    except KeyError:
        raise MalformedConfigurationError(
            'The "PVCFLEET_CONFIG_FILE" environment variable must be set'
        )


def parse_config(o_config):
    """
    Flatten a loaded configuration document into the config dictionary
    """
    # Create the configuration dictionary
    config = dict()

    # Get the base configuration
    try:
        o_base = o_config["pvc"]
    except (KeyError, TypeError) as k:
        raise MalformedConfigurationError(f"Missing top-level category {k}")

    for key in ["agent_name"]:
        try:
            config[key] = o_base[key]
        except KeyError as k:
            raise MalformedConfigurationError(f"Missing first-level key {k}")
    config["debug"] = strtobool(o_base.get("debug", False))

    # Get the first-level categories
    try:
        o_fleet = o_base["fleet"]
        o_storage = o_base["storage"]
    except KeyError as k:
        raise MalformedConfigurationError(f"Missing first-level category {k}")
    o_deploy = o_base.get("deploy") or dict()
    o_queue = o_base.get("queue") or dict()
    o_notifications = o_base.get("notifications") or dict()

    # Get the Fleet API configuration
    for key in ["uri", "api_key"]:
        try:
            config[f"fleet_{key}"] = o_fleet[key]
        except Exception:
            raise MalformedConfigurationError(
                f"Missing second-level key '{key}' under 'fleet'"
            )
    try:
        config["fleet_timeout"] = int(o_fleet.get("timeout", DEFAULT_FLEET_TIMEOUT))
    except (TypeError, ValueError):
        raise MalformedConfigurationError("Invalid value for 'timeout' under 'fleet'")
    config["fleet_verify_ssl"] = strtobool(o_fleet.get("verify_ssl", True))

    # Get the storage configuration
    try:
        config["storage_backend"] = o_storage["backend"]
    except Exception:
        raise MalformedConfigurationError(
            "Missing second-level key 'backend' under 'storage'"
        )
    if config["storage_backend"] not in ["fleet", "sqlite"]:
        raise MalformedConfigurationError(
            f"Unknown storage backend '{config['storage_backend']}'"
        )
    config["storage_path"] = o_storage.get("path", DEFAULT_STORAGE_PATH)
    config["storage_prefix"] = o_storage.get("prefix", config["agent_name"])

    # Get the deploy configuration
    config["deploy_series"] = o_deploy.get("series")

    # Get the queue configuration
    config["queue_address"] = o_queue.get("address", "127.0.0.1")
    config["queue_port"] = o_queue.get("port", 6379)
    config["queue_path"] = o_queue.get("path", "/0")

    # Get the Notifications configuration
    config["notifications_enabled"] = strtobool(o_notifications.get("enabled", False))
    if config["notifications_enabled"]:
        for key in ["uri", "action", "icons", "body"]:
            try:
                config[f"notifications_{key}"] = o_notifications[key]
            except Exception:
                raise MalformedConfigurationError(
                    f"Missing second-level key '{key}' under 'notifications'"
                )
        config["notifications_action"] = str(config["notifications_action"]).lower()
        if config["notifications_action"] not in NOTIFICATION_ACTIONS:
            raise MalformedConfigurationError(
                f"Invalid value for 'action' under 'notifications', must be one of {NOTIFICATION_ACTIONS}"
            )

    return config


def read_config(config_file=None):
    if config_file is None:
        config_file = get_config_path()

    print(f"Loading configuration from file '{config_file}'")

    # Load the YAML config file
    with open(config_file, "r") as cfgfile:
        try:
            o_config = yaml.load(cfgfile, Loader=yaml.SafeLoader)
        except yaml.YAMLError as e:
            raise MalformedConfigurationError(f"Failed to parse configuration file: {e}")

    return parse_config(o_config)


##########################################################
# Provider setup
##########################################################


def open_session(config):
    return FleetSession(
        config["fleet_uri"],
        config["fleet_api_key"],
        timeout=config["fleet_timeout"],
        verify=config["fleet_verify_ssl"],
    )


def open_storage(config, session):
    if config["storage_backend"] == "sqlite":
        return SQLiteStorage(config["storage_path"])
    return FleetStorage(session, config["storage_prefix"])


def open_provider(config):
    """
    Open a fleet session and the configured storage

    Returns a (session, storage) tuple.
    """
    session = open_session(config)
    storage = open_storage(config, session)
    return session, storage
