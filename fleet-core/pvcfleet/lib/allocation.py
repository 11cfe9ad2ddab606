#!/usr/bin/env python3

# allocation.py - PVC Fleet node allocation libraries
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

import pvcfleet.lib.constraints as constraints_lib
import pvcfleet.lib.images as images
import pvcfleet.lib.instances as instances
import pvcfleet.lib.networks as networks
import pvcfleet.lib.notifications as notifications
import pvcfleet.lib.state as state
import pvcfleet.lib.tools as tools_lib
import pvcfleet.lib.userdata as userdata

from pvcfleet.lib.dataclasses import AllocationState, LookupStatus, ProvisioningAttempt
from pvcfleet.lib.errors import (
    FleetError,
    NotBootstrappedError,
    ReleaseError,
    ToolsNotFoundError,
    TransportError,
)

from celery.utils.log import get_task_logger


logger = get_task_logger(__name__)


#
# Helper functions
#
def _transition(attempt, target_state):
    logger.info(
        f"Provisioning {attempt.hostname or 'any node'}: {attempt.state.value} -> {target_state.value}"
    )
    attempt.state = target_state


def _release_after_failure(config, session, node, timeout=None):
    """
    Give back a node whose provisioning failed after it was acquired
    """
    try:
        stop_instances(config, session, node.id, timeout=timeout)
    except FleetError as e:
        logger.warning(f"Failed to release node {node.system_id} after failure: {e}")


#
# Acquire and start
#
def validate_constraints(storage, constraints):
    """
    Check constraints against the image metadata before acquiring

    Returns the names of constraints that will be ignored.
    """
    if constraints is None:
        return list()

    supported_arches = list()
    if constraints.arch:
        supported_arches = images.supported_architectures(storage)

    unsupported = constraints_lib.validate(constraints, supported_arches)
    if unsupported:
        logger.warning(f"Ignoring unsupported constraints: {', '.join(unsupported)}")
    return unsupported


def acquire_node(
    config,
    session,
    hostname,
    constraints,
    include_networks,
    exclude_networks,
    possible_tools,
    timeout=None,
):
    """
    Acquire a node from the fleet and select agent tools for it

    Returns a (node, tools) tuple.
    """
    params = constraints_lib.acquire_parameters(
        config, hostname, constraints, include_networks, exclude_networks
    )
    logger.debug(f"Acquire parameters: {params}")

    node = session.acquire(params, timeout=timeout)

    try:
        tools = tools_lib.match_tools(possible_tools, node.arch)
    except ToolsNotFoundError:
        logger.error(f"No agent tools for node {node.system_id} ({node.arch})")
        _release_after_failure(config, session, node, timeout=timeout)
        raise

    logger.info(f"Selected agent tools {tools.version} for node {node.system_id}")
    return node, tools


def _provision(config, session, storage, attempt, request, timeout=None):
    series = request.get("series") or config.get("deploy_series")
    userdata_builder = request.get("userdata_builder") or userdata.build_userdata
    include_networks = request.get("include_networks")

    validate_constraints(storage, request.get("constraints"))
    possible_tools = tools_lib.find_tools(storage, series=series)

    _transition(attempt, AllocationState.acquiring)
    try:
        node, tools = acquire_node(
            config,
            session,
            attempt.hostname,
            request.get("constraints"),
            include_networks,
            request.get("exclude_networks"),
            possible_tools,
            timeout=timeout,
        )
    except FleetError as e:
        attempt.error = e
        _transition(attempt, AllocationState.failed)
        notifications.send_webhook(config, "failure", f"Failed to acquire node: {e}")
        raise

    attempt.node = node
    attempt.tools = tools
    _transition(attempt, AllocationState.acquired)

    try:
        attempt.interfaces = networks.setup_networks(
            session, node, include_networks, timeout=timeout
        )

        _transition(attempt, AllocationState.starting)
        user_data = userdata_builder(node.hostname)
        session.start_node(node.system_id, user_data, series=series, timeout=timeout)
    except Exception as e:
        attempt.error = e
        _transition(attempt, AllocationState.failed)
        logger.error(f"Failed to start node {node.system_id}: {e}")
        _release_after_failure(config, session, node, timeout=timeout)
        notifications.send_webhook(
            config, "failure", f"Failed to start node {node.hostname}: {e}"
        )
        raise

    _transition(attempt, AllocationState.started)
    notifications.send_webhook(
        config, "success", f"Started node {node.hostname} ({node.system_id})"
    )
    return attempt


def start_instance(
    config,
    session,
    storage,
    hostname="",
    constraints=None,
    include_networks=None,
    exclude_networks=None,
    series=None,
    userdata_builder=None,
    timeout=None,
):
    """
    Acquire, configure and start one node

    If anything fails after the node was acquired, the node is released
    again before the error is raised.
    """
    request = {
        "constraints": constraints,
        "include_networks": include_networks,
        "exclude_networks": exclude_networks,
        "series": series,
        "userdata_builder": userdata_builder,
    }
    attempt = ProvisioningAttempt(hostname=hostname)
    return _provision(config, session, storage, attempt, request, timeout=timeout)


def start_instances(config, session, storage, start_requests, timeout=None):
    """
    Start several nodes; a failure of one does not stop the others

    Each request is a dict with the keyword arguments of start_instance.
    Returns one ProvisioningAttempt per request; failed attempts carry the
    error that stopped them.
    """
    attempts = list()
    for request in start_requests:
        attempt = ProvisioningAttempt(hostname=request.get("hostname", ""))
        try:
            _provision(config, session, storage, attempt, request, timeout=timeout)
        except FleetError as e:
            attempt.error = e
            if attempt.state != AllocationState.failed:
                _transition(attempt, AllocationState.failed)
        attempts.append(attempt)

    started = [a for a in attempts if a.state == AllocationState.started]
    logger.info(f"Started {len(started)} of {len(attempts)} requested node(s)")
    return attempts


#
# Release and destroy
#
def stop_instances(config, session, *ids, timeout=None):
    """
    Release nodes back to the fleet in a single call

    Nodes we do not own are ignored by the fleet, so releasing is idempotent.
    """
    if not ids:
        return

    system_ids = [instances.extract_system_id(i) for i in ids]
    logger.info(f"Releasing nodes {', '.join(system_ids)}")
    session.release_nodes(system_ids, timeout=timeout)
    notifications.send_webhook(config, "info", f"Released nodes {', '.join(system_ids)}")


def release_all(config, session, ids, timeout=None):
    """
    Release every given node, aggregating failures

    A failed bulk release falls back to one release per node, so that no node
    is skipped because another one failed.
    """
    ids = list(ids)
    if not ids:
        return

    try:
        stop_instances(config, session, *ids, timeout=timeout)
        return
    except TransportError as e:
        logger.warning(f"Bulk release failed, releasing nodes one by one: {e}")

    failures = dict()
    for inst_id in ids:
        try:
            session.release_nodes([instances.extract_system_id(inst_id)], timeout=timeout)
        except TransportError as e:
            failures[inst_id] = e

    if failures:
        raise ReleaseError(failures)


def destroy(config, session, storage, timeout=None):
    """
    Tear down everything this environment owns

    Nodes are released before storage is cleaned, and storage is left alone
    if any node could not be listed or released.
    """
    logger.info(f"Destroying environment for agent {config['agent_name']}")
    notifications.send_webhook(config, "begin", "Destroying environment")

    try:
        nodes = instances.list_all(config, session, timeout=timeout)
        release_all(config, session, [node.id for node in nodes], timeout=timeout)
    except FleetError as e:
        notifications.send_webhook(config, "failure", f"Failed to destroy environment: {e}")
        raise

    storage.remove_all()

    logger.info(f"Destroyed environment, released {len(nodes)} node(s)")
    notifications.send_webhook(
        config, "completed", f"Destroyed environment, released {len(nodes)} node(s)"
    )


#
# Bootstrap
#
def bootstrap(
    config,
    session,
    storage,
    hostname="",
    constraints=None,
    include_networks=None,
    exclude_networks=None,
    series=None,
    userdata_builder=None,
    timeout=None,
):
    """
    Start the control-plane node and record it in the bootstrap state

    An existing control plane is reused: if the recorded instances still
    exist no new node is started. An unreadable record raises
    StateCorruptError and nothing is started.
    """
    try:
        state_ids = state.read_state_server_instances(storage)
    except NotBootstrappedError:
        state_ids = []

    if state_ids:
        result = instances.find_instances(session, state_ids, timeout=timeout)
        existing = [node for node in result.instances if node is not None]
        if existing:
            if result.status == LookupStatus.partial_failure:
                logger.warning(
                    f"Only {len(existing)} of {len(state_ids)} recorded state servers exist"
                )
                state.write_state(storage, [node.id for node in existing])
            logger.info("Environment is already bootstrapped; reusing state servers")
            return existing
        logger.warning("Recorded state servers no longer exist; bootstrapping again")

    attempt = start_instance(
        config,
        session,
        storage,
        hostname=hostname,
        constraints=constraints,
        include_networks=include_networks,
        exclude_networks=exclude_networks,
        series=series,
        userdata_builder=userdata_builder,
        timeout=timeout,
    )

    # Only record the node once it has started
    state.write_state(storage, [attempt.node.id])
    return [attempt.node]
