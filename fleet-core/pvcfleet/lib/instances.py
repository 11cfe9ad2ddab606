#!/usr/bin/env python3

# instances.py - PVC Fleet instance query libraries
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

from celery.utils.log import get_task_logger

from pvcfleet.lib.dataclasses import LookupResult, LookupStatus
from pvcfleet.lib.errors import NoInstancesError, PartialInstancesError


logger = get_task_logger(__name__)


def extract_system_id(instance_id):
    """
    Get the system ID from an instance ID (a node resource URI)

    "/api/1.0/nodes/node-0a1b/" -> "node-0a1b"; a bare system ID is
    returned unchanged.
    """
    return instance_id.rstrip("/").split("/")[-1]


def find_instances(session, ids, timeout=None):
    """
    Resolve instance ids to nodes without raising for missing ones
    """
    if not ids:
        return LookupResult(status=LookupStatus.empty_failure)

    nodes = session.list_nodes(
        system_ids=[extract_system_id(i) for i in ids], timeout=timeout
    )
    nodes_by_system_id = {node.system_id: node for node in nodes}

    found = [nodes_by_system_id.get(extract_system_id(i)) for i in ids]
    missing = len([node for node in found if node is None])
    logger.debug(f"Looked up {len(ids)} instance(s), {missing} missing")

    if missing == len(ids):
        return LookupResult(status=LookupStatus.empty_failure)
    if missing > 0:
        return LookupResult(status=LookupStatus.partial_failure, instances=found)
    return LookupResult(status=LookupStatus.ok, instances=found)


def lookup(session, ids, timeout=None):
    """
    Return the nodes for the given instance ids, in the same order

    Raises NoInstancesError when ids is empty or nothing resolves, and
    PartialInstancesError (carrying the positional result) when only some
    ids resolve.
    """
    result = find_instances(session, ids, timeout=timeout)

    if result.status == LookupStatus.empty_failure:
        raise NoInstancesError()
    if result.status == LookupStatus.partial_failure:
        raise PartialInstancesError(result.instances)
    return result.instances


def list_all(config, session, timeout=None):
    """
    Return every node acquired under our agent name
    """
    nodes = session.list_nodes(agent_name=config["agent_name"], timeout=timeout)
    logger.debug(f"Found {len(nodes)} instance(s) for agent {config['agent_name']}")
    return nodes
