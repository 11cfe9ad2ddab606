#!/usr/bin/env python3

# lshw.py - PVC Fleet hardware report libraries
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

# The hardware report is the XML output of "lshw -xml", as collected by the
# fleet during commissioning. Network devices show up as <node class="network">
# elements at arbitrary depth, for example:
#
#   <node id="network" claimed="true" class="network" handle="PCI:0000:03:00.0">
#    <logicalname>eth0</logicalname>
#    <serial>aa:bb:cc:dd:ee:f1</serial>
#   </node>

import xml.etree.ElementTree as ElementTree

from celery.utils.log import get_task_logger

from pvcfleet.lib.errors import ParseError


logger = get_task_logger(__name__)


NETWORK_CLASS = "network"


def _child_text(element, tag):
    child = element.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _walk(element, interfaces):
    """
    Recursively collect network nodes below (and including) element
    """
    if element.tag == "node" and element.get("class", "") == NETWORK_CLASS:
        interface_name = _child_text(element, "logicalname")
        mac_address = _child_text(element, "serial").lower()
        if interface_name and mac_address:
            interfaces[mac_address] = interface_name
        else:
            logger.debug(
                f"Skipping network node '{element.get('id', '')}' without name or serial"
            )

    for child in element:
        _walk(child, interfaces)


def extract_interfaces(report):
    """
    Parse an lshw XML report into a mapping of MAC address to interface name
    """
    if isinstance(report, str):
        report = report.encode("utf-8")
    if report is None:
        report = b""

    try:
        # lshw output sometimes starts with a blank line before the declaration
        root = ElementTree.fromstring(report.lstrip())
    except ElementTree.ParseError as e:
        raise ParseError(str(e))

    interfaces = dict()
    _walk(root, interfaces)

    logger.debug(f"Found interfaces: {interfaces}")
    return interfaces
