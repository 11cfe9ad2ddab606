#!/usr/bin/env python3

# userdata.py - PVC Fleet first-boot user data libraries
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

import shlex
import yaml

from dataclasses import dataclass


MACHINE_INFO_DIR = "/var/lib/pvcfleet"
MACHINE_INFO_FILE = f"{MACHINE_INFO_DIR}/machine-info.yaml"


@dataclass
class MachineInfo:
    """
    Facts about a node written onto its filesystem at first boot
    """

    hostname: str

    def dump(self):
        return yaml.safe_dump({"hostname": self.hostname}, default_flow_style=False)

    def cloudinit_runcmd(self):
        """
        Shell command that writes the machine info file on the node
        """
        return (
            f"mkdir -p {MACHINE_INFO_DIR}; "
            f"install -m 644 /dev/null {MACHINE_INFO_FILE}; "
            f"printf '%s\\n' {shlex.quote(self.dump())} > {MACHINE_INFO_FILE}"
        )


def build_userdata(hostname, runcmd=None):
    """
    Build the #cloud-config document for a node's first boot
    """
    info = MachineInfo(hostname)
    cloud_config = {
        "runcmd": [info.cloudinit_runcmd()] + list(runcmd or []),
    }
    rendered = "#cloud-config\n" + yaml.safe_dump(cloud_config, default_flow_style=False)
    return rendered.encode("utf-8")
