#!/usr/bin/env python3

# dataclasses.py - PVC Fleet dataclasses
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

import ipaddress

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pvcfleet.lib.errors import InvalidNetworkError


@dataclass(frozen=True)
class ConstraintSet:
    """
    Resource constraints for an acquire request

    cpu_power, root_disk and instance_type have no equivalent in the fleet
    query vocabulary and are never sent.
    """

    arch: Optional[str] = None
    cpu_cores: Optional[int] = None
    mem: Optional[int] = None
    cpu_power: Optional[int] = None
    root_disk: Optional[int] = None
    tags: Optional[Tuple[str, ...]] = None
    instance_type: Optional[str] = None


@dataclass
class Node:
    """
    An instance of a fleet Node
    """

    id: str
    system_id: str
    hostname: str = ""
    architecture: str = ""
    owned: bool = False
    status: Optional[int] = None
    hardware_report: Optional[bytes] = field(default=None, repr=False, compare=False)

    @property
    def arch(self):
        # "amd64/generic" -> "amd64"
        return self.architecture.split("/")[0] if self.architecture else ""

    @classmethod
    def from_api(cls, data):
        system_id = data["system_id"]
        return cls(
            id=data.get("resource_uri") or f"/api/1.0/nodes/{system_id}/",
            system_id=system_id,
            hostname=data.get("hostname") or "",
            architecture=data.get("architecture") or "",
            owned=bool(data.get("owner")),
            status=data.get("status"),
        )


@dataclass(frozen=True)
class NetworkDetails:
    """
    A fleet network a node is connected to
    """

    name: str
    ip: str
    netmask: str
    vlan_tag: int = 0
    description: str = ""

    @property
    def cidr(self):
        if not self.netmask:
            return self.ip
        # Host bits are kept as reported, e.g. 192.168.2.1/24
        try:
            prefixlen = ipaddress.IPv4Network(
                f"0.0.0.0/{self.netmask}", strict=False
            ).prefixlen
        except ValueError as e:
            raise InvalidNetworkError(self.name, e)
        return f"{self.ip}/{prefixlen}"

    @classmethod
    def from_api(cls, data):
        return cls(
            name=data["name"],
            ip=data.get("ip") or "",
            netmask=data.get("netmask") or "",
            vlan_tag=data.get("vlan_tag") or 0,
            description=data.get("description") or "",
        )


@dataclass(frozen=True)
class NetworkMembership:
    """
    A link between one MAC address of a node and a fleet network
    """

    network: NetworkDetails
    mac_address: str

    @property
    def name(self):
        return self.network.name


@dataclass(frozen=True)
class NetworkInterface:
    """
    A usable network interface of a started node
    """

    mac_address: str
    interface_name: str
    cidr: str
    vlan_tag: int
    network_name: str
    provider_id: str
    disabled: bool = False


@dataclass(frozen=True)
class ToolVersion:
    """
    An agent tools tarball held in storage
    """

    version: str
    series: str
    arch: str
    name: str


@dataclass
class BootstrapState:
    """
    The persisted record of control-plane instances
    """

    state_instances: List[str] = field(default_factory=list)


class AllocationState(str, Enum):
    requested = "requested"
    acquiring = "acquiring"
    acquired = "acquired"
    starting = "starting"
    started = "started"
    failed = "failed"


@dataclass
class ProvisioningAttempt:
    """
    The lifecycle of a single provisioning request
    """

    hostname: str = ""
    state: AllocationState = AllocationState.requested
    node: Optional[Node] = None
    tools: Optional[ToolVersion] = None
    interfaces: List[NetworkInterface] = field(default_factory=list)
    error: Optional[Exception] = None


class LookupStatus(str, Enum):
    ok = "ok"
    partial_failure = "partial_failure"
    empty_failure = "empty_failure"


@dataclass
class LookupResult:
    """
    The outcome of a batch instance lookup

    instances always has one entry per requested id for ok and
    partial_failure results, with None in unresolved positions.
    """

    status: LookupStatus
    instances: List[Optional[Node]] = field(default_factory=list)
