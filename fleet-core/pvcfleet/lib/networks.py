#!/usr/bin/env python3

# networks.py - PVC Fleet network setup libraries
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

import pvcfleet.lib.lshw as lshw

from pvcfleet.lib.dataclasses import NetworkInterface, NetworkMembership
from pvcfleet.lib.errors import InvalidNetworkError, ParseError, TransportError


logger = get_task_logger(__name__)


def get_hardware_report(session, node, timeout=None):
    """
    Fetch the lshw report of a node, once per node object
    """
    if node.hardware_report is None:
        node.hardware_report = session.get_hardware_report(
            node.system_id, timeout=timeout
        )
    return node.hardware_report


def get_instance_network_interfaces(session, node, timeout=None):
    """
    Map each MAC address of a node to its interface name
    """
    report = get_hardware_report(session, node, timeout=timeout)
    try:
        return lshw.extract_interfaces(report)
    except ParseError as e:
        e.node = node.system_id
        raise


def get_instance_networks(session, node, timeout=None):
    """
    List the fleet networks a node is connected to
    """
    return session.list_networks(node=node.system_id, timeout=timeout)


def get_network_macs(session, network_name, timeout=None):
    """
    List the MAC addresses connected to a fleet network
    """
    return [
        mac.lower() for mac in session.list_connected_macs(network_name, timeout=timeout)
    ]


def get_network_memberships(session, node, timeout=None):
    memberships = list()
    for network in get_instance_networks(session, node, timeout=timeout):
        for mac in get_network_macs(session, network.name, timeout=timeout):
            memberships.append(NetworkMembership(network=network, mac_address=mac))
    return memberships


def setup_networks(session, node, include_networks, timeout=None):
    """
    Work out the usable network interfaces of a node

    Only memberships whose MAC address appears in the hardware report are
    returned, in hardware report order. When include_networks is given,
    interfaces on any other network are marked disabled.
    """
    include_networks = set(include_networks or [])

    interfaces = get_instance_network_interfaces(session, node, timeout=timeout)
    memberships = get_network_memberships(session, node, timeout=timeout)

    by_mac = dict()
    for membership in memberships:
        by_mac.setdefault(membership.mac_address, []).append(membership)

    network_info = list()
    for mac_address, interface_name in interfaces.items():
        for membership in by_mac.get(mac_address, []):
            disabled = bool(include_networks) and membership.name not in include_networks
            network_info.append(
                NetworkInterface(
                    mac_address=mac_address,
                    interface_name=interface_name,
                    cidr=membership.network.cidr,
                    vlan_tag=membership.network.vlan_tag,
                    network_name=membership.name,
                    provider_id=membership.name,
                    disabled=disabled,
                )
            )

    unmatched = [m for m in memberships if m.mac_address not in interfaces]
    for membership in unmatched:
        logger.debug(
            f"No interface on node {node.system_id} for MAC {membership.mac_address} on network {membership.name}"
        )

    logger.info(
        f"Node {node.system_id} has {len(network_info)} usable network interface(s)"
    )
    return network_info


def setup_networks_batch(session, nodes, include_networks, timeout=None):
    """
    Set up networks for several nodes, recording failures per node

    Returns a list of (node, interfaces, error) tuples in node order.
    """
    results = list()
    for node in nodes:
        try:
            network_info = setup_networks(
                session, node, include_networks, timeout=timeout
            )
        except (ParseError, InvalidNetworkError, TransportError) as e:
            logger.warning(f"Network setup failed for node {node.system_id}: {e}")
            results.append((node, [], e))
            continue
        results.append((node, network_info, None))
    return results
