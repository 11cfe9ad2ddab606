#!/usr/bin/env python3

# constraints.py - PVC Fleet constraint translation libraries
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

from pvcfleet.lib.errors import ConstraintError, NetworkFilterError


# Constraints the fleet cannot honour, by field and by constraint name
UNSUPPORTED_CONSTRAINTS = [
    ("cpu_power", "cpu-power"),
    ("instance_type", "instance-type"),
    ("root_disk", "root-disk"),
]


def translate(constraints):
    """
    Convert a ConstraintSet into fleet acquire query parameters

    cpu_power, root_disk and instance_type are dropped; absent fields produce
    no parameter.
    """
    params = dict()
    if constraints is None:
        return params

    if constraints.arch:
        params["arch"] = [constraints.arch]
    if constraints.cpu_cores is not None:
        params["cpu_count"] = [str(constraints.cpu_cores)]
    if constraints.mem is not None:
        params["mem"] = [str(constraints.mem)]
    if constraints.tags:
        params["tags"] = [",".join(constraints.tags)]

    return params


def validate(constraints, supported_arches):
    """
    Check a ConstraintSet against what the fleet can honour

    Returns the names of the constraints that are set but will be ignored.
    Raises ConstraintError when arch is not one of supported_arches.
    """
    if constraints is None:
        return list()

    if constraints.arch and constraints.arch not in supported_arches:
        raise ConstraintError("arch", constraints.arch, sorted(supported_arches))

    return [
        name
        for field, name in UNSUPPORTED_CONSTRAINTS
        if getattr(constraints, field) is not None
    ]


def add_networks(params, include_networks, exclude_networks):
    """
    Add the networks and not_networks parameters to an existing query
    """
    include_networks = list(include_networks or [])
    exclude_networks = list(exclude_networks or [])

    overlap = set(include_networks).intersection(exclude_networks)
    if overlap:
        raise NetworkFilterError(overlap)

    if include_networks:
        params["networks"] = include_networks
    if exclude_networks:
        params["not_networks"] = exclude_networks

    return params


def translate_network_filter(include_networks, exclude_networks):
    """
    Convert a network include/exclude filter into fleet query parameters
    """
    return add_networks(dict(), include_networks, exclude_networks)


def acquire_parameters(
    config, hostname, constraints, include_networks=None, exclude_networks=None
):
    """
    Build the complete parameter set for an acquire request
    """
    params = translate(constraints)
    add_networks(params, include_networks, exclude_networks)

    # Always tag the request so our own allocations can be told apart
    params["agent_name"] = [config["agent_name"]]
    if hostname:
        params["name"] = [hostname]

    return params
