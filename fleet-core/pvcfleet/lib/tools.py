#!/usr/bin/env python3

# tools.py - PVC Fleet agent tools libraries
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

import re

from celery.utils.log import get_task_logger

from pvcfleet.lib.dataclasses import ToolVersion
from pvcfleet.lib.errors import ToolsNotFoundError


logger = get_task_logger(__name__)


TOOLS_PREFIX = "tools/releases/"

# Like "tools/releases/pvcfleet-agent-1.2.0-jammy-amd64.tgz"
tools_name_re = re.compile(
    r"^tools/releases/pvcfleet-agent-(?P<version>\d[\w.]*)-(?P<series>\w+)-(?P<arch>\w+)\.tgz$"
)


def tools_name(version, series, arch):
    return f"{TOOLS_PREFIX}pvcfleet-agent-{version}-{series}-{arch}.tgz"


def parse_tools_name(name):
    """
    Parse a storage name into a ToolVersion, or None if it is not a tools tarball
    """
    m = tools_name_re.match(name)
    if m is None:
        return None
    return ToolVersion(
        version=m.group("version"),
        series=m.group("series"),
        arch=m.group("arch"),
        name=name,
    )


def _version_key(tools):
    key = list()
    for part in tools.version.split("."):
        key.append(int(part) if part.isdigit() else 0)
    return key


def upload_tools(storage, version, series, arch, data):
    name = tools_name(version, series, arch)
    storage.put(name, data)
    logger.info(f"Uploaded agent tools {name}")
    return parse_tools_name(name)


def find_tools(storage, series=None, arch=None):
    """
    List the agent tools in storage, newest version first
    """
    found = list()
    for name in storage.list(TOOLS_PREFIX):
        tools = parse_tools_name(name)
        if tools is None:
            logger.debug(f"Ignoring unrecognised tools file {name}")
            continue
        if series is not None and tools.series != series:
            continue
        if arch is not None and tools.arch != arch:
            continue
        found.append(tools)

    if not found:
        raise ToolsNotFoundError(
            f"no agent tools available for series {series or 'any'} arch {arch or 'any'}"
        )

    return sorted(found, key=_version_key, reverse=True)


def match_tools(possible_tools, arch):
    """
    Select the newest tools that run on the given architecture

    Nodes that do not report an architecture accept any tools.
    """
    matching = [tools for tools in possible_tools if not arch or tools.arch == arch]
    if not matching:
        raise ToolsNotFoundError(f"no agent tools available for arch {arch or 'unknown'}")
    return sorted(matching, key=_version_key, reverse=True)[0]
