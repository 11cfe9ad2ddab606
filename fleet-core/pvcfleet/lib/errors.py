#!/usr/bin/env python3

# errors.py - PVC Fleet provisioning exceptions
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


class FleetError(Exception):
    """
    Base class for all fleet provisioning exceptions
    """

    def __init__(self, error=None):
        self.msg = error if error is not None else "Generic fleet failure"

    def __str__(self):
        return str(self.msg)


class NoInstancesError(FleetError):
    """
    No instances were requested, or none of the requested instances exist
    """

    def __init__(self, error=None):
        super().__init__(error if error is not None else "no instances found")


class PartialInstancesError(FleetError):
    """
    Only some of the requested instances exist

    The instances attribute holds one entry per requested id, with None in
    the positions that did not resolve.
    """

    def __init__(self, instances, error=None):
        super().__init__(
            error if error is not None else "only some instances were found"
        )
        self.instances = instances

    @property
    def missing(self):
        return [idx for idx, inst in enumerate(self.instances) if inst is None]


class NotBootstrappedError(FleetError):
    """
    No bootstrap state record exists in storage
    """

    def __init__(self, error=None):
        super().__init__(
            error if error is not None else "environment is not bootstrapped"
        )


class CapacityError(FleetError):
    """
    The fleet has no free node matching the acquire request
    """

    def __init__(self, error=None, params=None):
        super().__init__(
            error if error is not None else "no matching node is available"
        )
        self.params = params


class ParseError(FleetError):
    """
    A hardware report is not well-formed XML
    """

    def __init__(self, error=None, node=None):
        super().__init__(error)
        self.node = node

    def __str__(self):
        if self.node is not None:
            return f"cannot parse hardware report of node {self.node}: {self.msg}"
        return f"cannot parse hardware report: {self.msg}"


class TransportError(FleetError):
    """
    A remote call to the fleet API failed
    """

    def __init__(self, operation, target, status_code=None, message=None):
        super().__init__(message)
        self.operation = operation
        self.target = target
        self.status_code = status_code

    def __str__(self):
        if self.status_code is not None:
            return f"{self.operation} on {self.target} failed: {self.msg} (HTTP Code: {self.status_code})"
        return f"{self.operation} on {self.target} failed: {self.msg}"


class ToolsNotFoundError(FleetError):
    """
    No agent tools are available for the requested series or architecture
    """

    def __init__(self, error=None):
        super().__init__(error if error is not None else "no matching tools available")


class NetworkFilterError(FleetError):
    """
    A network name was given both as included and excluded
    """

    def __init__(self, names):
        super().__init__(
            f"networks both included and excluded: {', '.join(sorted(names))}"
        )
        self.names = names


class ObjectNotFoundError(FleetError):
    """
    A storage object does not exist
    """

    def __init__(self, name):
        super().__init__(f"file '{name}' not found")
        self.name = name


class ReleaseError(FleetError):
    """
    One or more nodes could not be released

    The failures attribute maps each failed instance id to its error.
    """

    def __init__(self, failures):
        details = "; ".join(f"{inst_id}: {err}" for inst_id, err in failures.items())
        super().__init__(f"cannot release {len(failures)} node(s): {details}")
        self.failures = failures


class StateCorruptError(FleetError):
    """
    The bootstrap state record exists but cannot be read
    """

    def __init__(self, error=None):
        super().__init__(
            error if error is not None else "bootstrap state record is unreadable"
        )


class InvalidNetworkError(FleetError):
    """
    The fleet reported network details that cannot be used
    """

    def __init__(self, name, error=None):
        super().__init__(f"network '{name}' is invalid: {error}")
        self.name = name


class ConstraintError(FleetError):
    """
    A constraint value is outside the supported vocabulary
    """

    def __init__(self, name, value, valid_values):
        super().__init__(
            f"invalid constraint value: {name}={value}\nvalid values are: {list(valid_values)}"
        )
        self.name = name
        self.value = value
        self.valid_values = valid_values


class ImageMetadataError(FleetError):
    """
    No usable image metadata is held in storage
    """

    def __init__(self, error=None):
        super().__init__(error if error is not None else "no image metadata found")
