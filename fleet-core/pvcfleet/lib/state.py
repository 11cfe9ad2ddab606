#!/usr/bin/env python3

# state.py - PVC Fleet bootstrap state libraries
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

import yaml

from celery.utils.log import get_task_logger

import pvcfleet.lib.instances as instances

from pvcfleet.lib.dataclasses import BootstrapState
from pvcfleet.lib.errors import (
    NotBootstrappedError,
    ObjectNotFoundError,
    StateCorruptError,
)


logger = get_task_logger(__name__)


STATE_FILE = "provider-state"


def save_state(storage, state):
    """
    Replace the bootstrap state record in storage
    """
    data = yaml.safe_dump(
        {"state-instances": list(state.state_instances)}, default_flow_style=False
    )
    storage.put(STATE_FILE, data.encode("utf-8"))
    logger.info(f"Saved bootstrap state with {len(state.state_instances)} instance(s)")


def load_state(storage):
    """
    Read the bootstrap state record from storage
    """
    try:
        data = storage.get(STATE_FILE)
    except ObjectNotFoundError:
        raise NotBootstrappedError()

    try:
        o_state = yaml.load(data, Loader=yaml.SafeLoader)
    except yaml.YAMLError as e:
        raise StateCorruptError(f"bootstrap state is unreadable: {e}")

    # A record always holds a mapping with a (possibly empty) list of ids
    if not isinstance(o_state, dict) or "state-instances" not in o_state:
        raise StateCorruptError(
            f"bootstrap state is not a state-instances mapping: {o_state!r}"
        )
    state_instances = o_state["state-instances"]
    if state_instances is None:
        state_instances = list()
    if not isinstance(state_instances, list):
        raise StateCorruptError(
            f"bootstrap state-instances is not a list: {state_instances!r}"
        )

    return BootstrapState(state_instances=[str(i) for i in state_instances])


def write_state(storage, ids):
    save_state(storage, BootstrapState(state_instances=list(ids)))


def read_state_server_instances(storage):
    """
    Return the ids of the control-plane instances

    The order carries no meaning; compare the result as a set.
    """
    return load_state(storage).state_instances


def state_server_hostnames(session, storage):
    """
    Return the hostnames of the control-plane instances that still exist
    """
    ids = read_state_server_instances(storage)
    result = instances.find_instances(session, ids)
    return [node.hostname for node in result.instances if node is not None]
