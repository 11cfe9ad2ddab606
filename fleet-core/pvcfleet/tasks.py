#!/usr/bin/env python3

# tasks.py - PVC Fleet worker tasks
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

from dataclasses import asdict

import pvcfleet.Provider as Provider
import pvcfleet.lib.allocation as allocation

from pvcfleet.lib.dataclasses import ConstraintSet

from celery import Celery
from celery.utils.log import get_task_logger


logger = get_task_logger(__name__)


celery = Celery("pvcfleet")

config = None


def configure(new_config):
    """
    Set the worker configuration and point Celery at the configured broker
    """
    global config
    config = new_config
    celery.conf.update(
        broker_url=f"redis://{config['queue_address']}:{config['queue_port']}{config['queue_path']}"
    )


def get_config():
    if config is None:
        configure(Provider.read_config())
    return config


def _constraints(data):
    if not data:
        return None
    data = dict(data)
    if data.get("tags") is not None:
        data["tags"] = tuple(data["tags"])
    return ConstraintSet(**data)


#
# Celery functions
#
@celery.task(bind=True)
def start_instance(
    self,
    hostname="",
    constraints=None,
    include_networks=None,
    exclude_networks=None,
    series=None,
):
    task_config = get_config()
    session, storage = Provider.open_provider(task_config)

    attempt = allocation.start_instance(
        task_config,
        session,
        storage,
        hostname=hostname,
        constraints=_constraints(constraints),
        include_networks=include_networks,
        exclude_networks=exclude_networks,
        series=series,
    )
    logger.debug(attempt)

    return {
        "id": attempt.node.id,
        "hostname": attempt.node.hostname,
        "tools": attempt.tools.version,
        "interfaces": [asdict(interface) for interface in attempt.interfaces],
    }


@celery.task(bind=True)
def stop_instances(self, ids):
    task_config = get_config()
    session, storage = Provider.open_provider(task_config)
    allocation.stop_instances(task_config, session, *ids)


@celery.task(bind=True)
def destroy(self):
    task_config = get_config()
    session, storage = Provider.open_provider(task_config)
    allocation.destroy(task_config, session, storage)
